"""
Salad bar backend package.

A FastAPI application serving the menu, orders, subscriptions and loyalty
balance of a salad-ordering app on top of a record store abstraction, so the
same handlers run against an in-memory store in tests and a SQL database in
production.
"""
