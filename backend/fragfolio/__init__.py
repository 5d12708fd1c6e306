"""
Fragfolio Backend — AI Smart-Input Package
============================================

What: The AI side of fragfolio: completion, normalization and note suggestion
      for user-entered fragrance names.
Who:  Imported by uvicorn (fragfolio.main:app), Alembic and pytest.

Architecture Note:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │     Services (smart-input logic)    │  ← cache, rules, fallbacks
    ├─────────────────────────────────────┤
    │   Providers (OpenAI/Anthropic/...)  │  ← thin LLM wrappers
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
