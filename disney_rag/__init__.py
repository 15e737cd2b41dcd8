"""Disney AI Assistant — asyncio client for the backend RAG query API."""
