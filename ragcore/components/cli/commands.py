"""
CLI commands for document ingestion, status polling, search and question answering.
"""

import click
import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from ...components.context.assembler import ContextAssembler
from ...components.document_processing.processor import DocumentProcessor
from ...components.prompts.formatter import PromptFormatter
from ...components.query.processor import QueryProcessor
from ...components.search.searcher import VectorSearchService
from ...config.database import PostgresConfig
from ...config.processor import ProcessorConfig
from ...config.query import QueryConfig
from ...models.schemas import ProcessDocumentRequest, SearchOptions
from ...services.blob_storage import LocalBlobStorage
from ...services.database import (
    create_async_db_engine, create_async_session_maker, init_database
)
from ...services.embeddings import EmbeddingService, OpenAIEmbeddingProvider
from ...services.llm import OpenAIChatProvider
from ...services.storage import PostgresDocumentStore, verify_embedding_dimension
from ...utils.errors import RagCoreError
from ...utils.rate_limiter import RetryPolicy

logger = logging.getLogger(__name__)

console = Console()


@dataclass
class Runtime:
    """Wired pipeline objects for one CLI invocation."""
    document_processor: DocumentProcessor
    search_service: VectorSearchService
    query_processor: QueryProcessor
    engine: Optional[object] = None

    async def close(self):
        if self.engine is not None:
            await self.engine.dispose()


def build_runtime(
    processor_config: Optional[ProcessorConfig] = None,
    query_config: Optional[QueryConfig] = None
) -> Runtime:
    """Wire the Postgres-backed pipeline from configuration."""
    processor_config = processor_config or ProcessorConfig()
    query_config = query_config or QueryConfig()
    postgres_config = processor_config.postgres_config or PostgresConfig()
    embedding_config = processor_config.embedding_config
    verify_embedding_dimension(embedding_config.dimension)

    engine = create_async_db_engine(postgres_config)
    store = PostgresDocumentStore(create_async_session_maker(engine))

    embedding_service = EmbeddingService(
        provider=OpenAIEmbeddingProvider(embedding_config.model_name, processor_config.openai_api_key),
        store=store,
        config=embedding_config,
        retry_policy=RetryPolicy(processor_config.rate_limit_config)
    )
    llm = OpenAIChatProvider(query_config.llm)
    search_service = VectorSearchService(embedding_service, store)

    return Runtime(
        document_processor=DocumentProcessor(
            store=store,
            blob_storage=LocalBlobStorage(processor_config.blob_storage_dir),
            embedding_service=embedding_service,
            config=processor_config
        ),
        search_service=search_service,
        query_processor=QueryProcessor(
            search_service=search_service,
            assembler=ContextAssembler(llm, query_config.assembly),
            formatter=PromptFormatter(query_config.prompt),
            llm=llm,
            config=query_config
        ),
        engine=engine
    )


def _run(coro_factory):
    """Run one command body against a fresh runtime."""
    async def _main():
        runtime = build_runtime()
        try:
            return await coro_factory(runtime)
        finally:
            await runtime.close()

    try:
        return asyncio.run(_main())
    except RagCoreError as e:
        click.echo(f"Error: {e.message}", err=True)
        raise click.Abort()


@click.group()
def cli():
    """Document ingestion and retrieval-augmented question answering."""
    pass


@cli.command('init-db')
def init_db():
    """Create the pgvector extension and document tables."""
    async def _init():
        engine = create_async_db_engine(PostgresConfig())
        try:
            await init_database(engine)
        finally:
            await engine.dispose()

    try:
        asyncio.run(_init())
    except Exception as e:
        click.echo(f"Error: {str(e)}", err=True)
        raise click.Abort()
    click.echo("Database initialized")


@cli.command()
@click.argument('file_path')
@click.option('--user-id', required=True, help='Owner of the document')
@click.option('--title', default=None, help='Display name, defaults to the file name')
@click.option('--file-type', default=None, help='pdf, docx or txt; inferred from the extension')
@click.option('--raw', is_flag=True, help='Treat FILE_PATH as a local text file and ingest its content')
@click.option('--chunk-size', type=int, default=None, help='Size of text chunks')
@click.option('--chunk-overlap', type=int, default=None, help='Overlap between chunks')
@click.option('--strategy', type=click.Choice(['fixed', 'paragraph', 'semantic']), default=None)
def ingest(
    file_path: str,
    user_id: str,
    title: Optional[str],
    file_type: Optional[str],
    raw: bool,
    chunk_size: Optional[int],
    chunk_overlap: Optional[int],
    strategy: Optional[str]
):
    """Ingest one document from blob storage (or a local text file with --raw)."""
    path = Path(file_path)
    request = ProcessDocumentRequest(
        user_id=user_id,
        title=title or path.name,
        file_path=None if raw else file_path,
        file_type=None if raw else (file_type or path.suffix.lstrip('.') or None),
        raw_content=path.read_text(encoding='utf-8') if raw else None,
        chunk_size=chunk_size,
        chunk_overlap=chunk_overlap,
        strategy=strategy
    )

    async def _ingest(runtime: Runtime):
        return await runtime.document_processor.process_document(request)

    result = _run(_ingest)
    click.echo(
        f"Document {result.document_id} {result.status.value} "
        f"with {result.chunk_count} chunks"
    )


@cli.command()
@click.argument('document_id')
@click.option('--user-id', required=True, help='Owner of the document')
def status(document_id: str, user_id: str):
    """Show the processing status of a document."""
    async def _status(runtime: Runtime):
        return await runtime.document_processor.get_status(document_id, user_id)

    report = _run(_status)
    click.echo(f"{report.document_id}: {report.status.value}")
    if report.error_message:
        click.echo(f"Error message: {report.error_message}")


@cli.command()
@click.argument('query')
@click.option('--user-id', required=True, help='Owner whose documents are searched')
@click.option('--limit', default=10, type=click.IntRange(min=1), help='Number of results to return')
@click.option('--threshold', default=0.7, type=click.FloatRange(0, 1), help='Similarity threshold')
def search(query: str, user_id: str, limit: int, threshold: float):
    """Search for chunks similar to QUERY."""
    options = SearchOptions(limit=limit, threshold=threshold, user_id=user_id)

    async def _search(runtime: Runtime):
        return await runtime.search_service.search(query, options)

    results = _run(_search)
    if not results:
        click.echo("No matching documents found.")
        return

    table = Table(
        title="Similarity Search Results",
        show_header=True,
        header_style="bold magenta"
    )
    table.add_column("Score", justify="right", style="cyan", no_wrap=True)
    table.add_column("Document", style="green")
    table.add_column("Chunk", justify="right", style="blue")
    table.add_column("Content", style="white", width=60)
    for result in results:
        table.add_row(
            f"{result.similarity:.3f}",
            result.title or result.document_id,
            str(result.chunk_index),
            result.content[:200] + "..."
        )
    console.print(table)


@cli.command()
@click.argument('question')
@click.option('--user-id', required=True, help='Owner whose documents are used')
def query(question: str, user_id: str):
    """Answer QUESTION from the ingested documents."""
    async def _query(runtime: Runtime):
        return await runtime.query_processor.process_query(question, user_id=user_id)

    result = _run(_query)
    console.print(result.content, markup=False)
    if result.citations:
        console.print("\n[bold]Sources:[/bold]")
        for i, citation in enumerate(result.citations, 1):
            console.print(f"[{i}] {citation.title}: {citation.snippet}", markup=False)
    timings = ", ".join(f"{k} {v:.0f}ms" for k, v in result.metadata.timings.items())
    click.echo(f"\n({timings}; total {result.metadata.processing_time_ms:.0f}ms)")


if __name__ == '__main__':
    cli()
