"""HTTP routers for the LinkUp client API."""
