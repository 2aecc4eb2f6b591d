"""Service layer for business logic.

Layer hierarchy:
    Routes (HTTP) -> Services (Business Logic) -> Repositories (Database)

Services should:
- Contain business rules (tag name uniqueness, which patched fields persist)
- Orchestrate calls to repositories
- Raise domain exceptions that routes translate into status codes

Services should NOT:
- Directly execute SQL queries (use repositories)
- Know about HTTP request/response details
"""
