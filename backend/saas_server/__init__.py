"""SaaS backend: accounts, sessions and subscription status."""
