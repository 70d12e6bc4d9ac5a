"""Feed data model, ordering and event topics."""
