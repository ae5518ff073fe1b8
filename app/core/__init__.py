"""Core sync primitives (keyed stores, ledgers, and the long-poll notifier).

Kept free of FastAPI concerns so it can be reused by API routes and tests.
"""
