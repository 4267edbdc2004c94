"""Route handlers, one router per URL prefix."""
