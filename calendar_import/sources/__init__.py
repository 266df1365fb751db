"""External collaborators: provider protocols and the ICS feed fetcher."""
