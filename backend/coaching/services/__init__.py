"""
Services Layer

Coach assignment logic that:
- Accepts domain inputs (IDs, scopes, dates, sessions)
- Returns domain outputs (models, dataclasses)
- Does NOT depend on HTTP request/response objects
- Mutates data only in the assignment store
"""
