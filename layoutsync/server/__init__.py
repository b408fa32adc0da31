"""FastAPI relay that stores and fans out layout document patches."""
