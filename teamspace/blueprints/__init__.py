"""Flask blueprints for TeamSpace."""
