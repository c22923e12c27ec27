"""
connectors — the Dropbox side of DropReel.

  • OAuth2 auth-URL generation and code → token exchange
  • Credential storage (file / database / memory) with Fernet at rest
  • Transparent, single-flight token refresh
  • Connection health probing
  • A thin client for the Dropbox HTTP API
"""
