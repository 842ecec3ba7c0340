"""Visual Commerce Agent (VCA) staging engine.

Stages a product photograph (plant plus container) into a physically plausible
composite and then into a contextual scene through external image-generation
providers.
"""
