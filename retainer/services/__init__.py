"""Services for retainer: the scheduler core and storage backends."""
