"""
Services package for TeamSpace.
Contains business logic separated from routes.

Submodules are imported explicitly (models depend on ``services.premium``).
"""
