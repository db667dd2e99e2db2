"""Magazine CMS."""
