"""Tag resolution, streaming pulls and bridge discovery."""
