"""Page-side preparation: in-page scripts, content filtering and the page channel."""
