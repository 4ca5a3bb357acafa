"""Transaction construction: fees, coin selection, building and signing."""
