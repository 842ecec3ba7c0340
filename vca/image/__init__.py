"""Image generation adapter package.

Scope:
    Provides the two provider clients (synchronous Gemini `generateContent`
    and asynchronous Replicate predictions), the dispatcher that routes between
    them, and the `ImageReference` abstraction both results are normalized to.

Non-goals:
    - No prompt construction (see `vca.prompting`).
    - No fallback policy; callers decide what to display on failure.
"""
