# Services package init
"""
Fragfolio Backend — Services Layer
====================================

What:  Business logic between the routes (HTTP) and the database / AI providers.
How:   Stateless module-level singletons; the AsyncSession is passed per call.

Service Inventory:
    - providers/: AIProvider interface plus OpenAI, Anthropic and Gemini adapters
    - provider_factory: name → cached provider instance, health checks
    - completion_service: brand / fragrance name completion
    - normalization_service: canonical names and master-data matching
    - note_suggestion_service: note pyramids, attributes, similar fragrances
    - cost_tracking_service: per-user AI spend, limits and reports
    - feedback_service: user reactions to suggestions, few-shot examples

Pure helpers (no I/O):
    similarity, normalization_rules, pricing, prompt_builder
"""
