"""auth/ -- Sessions, users, OAuth completion and RBAC for the LLM Studio BFF.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/ or llm/.
llm/ and api/ import from auth/, not the other way around.
"""
