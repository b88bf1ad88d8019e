"""Multi-tenant retrieval-augmented content pipeline for embeddable chat widgets.

Submodules overview:
- main: FastAPI application bootstrap and routes.
- config: Application settings and environment variable loading.
- db: Database engine/session management and vector index bootstrap.
- models: ORM models (tenants, bots, documents, chunks).
- scope: Tenant/bot query scope.
- chunking: Sentence-aware text chunker.
- embedding: Embedding providers and the batching client.
- vector_store: Scoped similarity search over chunk embeddings.
- retrieval: Retrieval service with relevance threshold.
- generation: Chat orchestration over retrieval and an LLM provider.
- scheduler: Scheduled retrain of website content.
- locks: Run-in-progress guards for the scheduler.
- ingestion: Ingestion pipeline and content source adapters.
- services: Process-wide service wiring.
- obs: Logging setup and tracing spans.
- errors: Error taxonomy.
- utils: URL and HTML helpers.
"""
