"""llm/ -- Authorization-gated administration of the LLM gateway and data-plane tokens.

Layer rule: llm/ imports from auth/ and core/. It does NOT import from api/.
"""
