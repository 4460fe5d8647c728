"""HTTP gateway for the stream relay."""
