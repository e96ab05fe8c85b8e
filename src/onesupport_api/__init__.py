"""
OneSupport API

Lambda-backed HTTP API for the OneSupport customer-support console: users,
cases, products, documents, assistant conversations and call transcripts.
"""
