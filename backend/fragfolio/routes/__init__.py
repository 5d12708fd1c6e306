# Routes package init
"""
Fragfolio Backend — API Routes Package
========================================

What:  HTTP route handlers for the AI smart-input API.
How:   Each module owns one area; all but health.py mount under /api/ai.

Route Inventory:
    - completion.py:      POST /complete, /batch-complete; GET /providers, /health
    - normalization.py:   POST /normalize, /batch-normalize, /smart-normalize;
                          GET  /normalization/providers, /normalization/health
    - note_suggestion.py: POST /suggest-notes, /batch-suggest-notes,
                               /similar-fragrances, /note-suggestion/feedback;
                          GET  /note-suggestion/providers, /note-suggestion/health,
                               /note-categories
    - cost.py:            GET  /cost/usage, /limits, /patterns, /efficiency,
                               /prediction, /history, /global-stats, /top-users
    - feedback.py:        POST /feedback/selection, /rejection, /modification, /session
    - health.py:          GET  /health  (service health, outside /api/ai)

Design Principle:
    Routes stay THIN: validate the body (pydantic), resolve the caller
    (dependencies.py), call one service method, wrap the result in
    {"success": true, "data": ...}. Errors travel as FragfolioError
    subclasses to the handlers in main.py.
"""
