"""
Fragfolio Backend — Pydantic Request/Response Schemas
=======================================================

What:  The API contract of the /api/ai endpoints.
How:   Request bodies are validated by FastAPI against these models before a
       route runs; a violation answers 422 with pydantic's error list.

Service results are plain dicts with many optional keys (fallback payloads,
cache flags, quality scores), so responses are wrapped in SuccessResponse
rather than modelled field by field.
"""
