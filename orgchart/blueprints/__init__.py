"""Flask blueprints: thin HTTP adapters over the service layer."""
