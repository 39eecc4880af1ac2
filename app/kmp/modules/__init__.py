"""
Feature modules live under this package.

Keep module boundaries clean: each module owns its routes/models/services,
while reusing platform primitives (auth, role gates, audit, storage, DB session).
"""
