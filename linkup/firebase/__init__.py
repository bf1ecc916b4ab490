"""Firebase bootstrap plus the Auth and Storage collaborators."""
