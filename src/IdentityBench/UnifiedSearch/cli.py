"""Command line entry point for unified identity search.

Provides:
- identitybench-search search - run a use case against a customer dataset
- identitybench-search explain - print the FIND statement for a set of terms
- identitybench-search use-cases - list the required category sets
"""

import dataclasses
import json
from pathlib import Path
from typing import List, Optional

import typer

from IdentityBench.UnifiedSearch.config import UnifiedSearchConfig, UnifiedSearchConfigManager
from IdentityBench.UnifiedSearch.devtools import (
    InMemoryCustomerIndex,
    InMemoryDetailStore,
    load_customers,
    sample_customers,
)
from IdentityBench.UnifiedSearch.errors import (
    RequestValidationError,
    SearchCancelledError,
    SearchCollaboratorError,
)
from IdentityBench.UnifiedSearch.logging_utils import setup_logging
from IdentityBench.UnifiedSearch.query import QueryBuilder, build_find_statement
from IdentityBench.UnifiedSearch.service import UnifiedSearchService
from IdentityBench.UnifiedSearch.types import UnifiedSearchRequest, UseCase

app = typer.Typer(
    name="identitybench-search",
    help="Unified multi-criteria identity search over the benchmark customer views",
    no_args_is_help=True,
)


def _load_config(config_path: Optional[Path]) -> UnifiedSearchConfigManager:
    if config_path is None:
        return UnifiedSearchConfigManager.from_config(UnifiedSearchConfig())
    try:
        return UnifiedSearchConfigManager(config_path)
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=2)


@app.command(name="search")
def search_command(
    terms: List[str] = typer.Option(
        ...,
        "--term",
        "-t",
        help="Search term; repeat for every criterion",
    ),
    use_case: Optional[str] = typer.Option(
        None,
        "--use-case",
        "-u",
        help="Use case identifier (UC1-UC7); required unless --best-effort",
    ),
    limit: Optional[int] = typer.Option(
        None, "--limit", "-n", help="Maximum number of results (default: ranking.default_limit)"
    ),
    best_effort: bool = typer.Option(
        False,
        "--best-effort",
        help="Rank by score alone instead of requiring full category coverage",
    ),
    dataset: Optional[Path] = typer.Option(
        None,
        "--dataset",
        "-d",
        help="JSON lines customer dataset (defaults to the built-in sample)",
    ),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="JSON or YAML configuration file"
    ),
    min_score: float = typer.Option(
        80.0, "--min-score", help="Minimum fuzzy score (0-100) for a field match"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level"),
) -> None:
    """Run a unified search against an in-memory customer index."""
    setup_logging(level=log_level)
    manager = _load_config(config_path)
    try:
        customers = load_customers(dataset) if dataset is not None else sample_customers()
    except (OSError, ValueError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=2)

    config = manager.get()
    if limit is None:
        limit = config.ranking.default_limit
    prefix = config.classification.collection_prefix
    service = UnifiedSearchService(
        search_collaborator=InMemoryCustomerIndex(
            customers, min_score=min_score, collection_prefix=prefix
        ),
        detail_store=InMemoryDetailStore(customers),
        config_manager=manager,
    )
    request = UnifiedSearchRequest(
        terms=terms, use_case=use_case, limit=limit, best_effort=best_effort
    )
    try:
        with service:
            response = service.search(request)
    except RequestValidationError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=2)
    except (SearchCancelledError, SearchCollaboratorError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)

    if json_output:
        typer.echo(json.dumps(response.as_dict(), indent=2))
        return
    if not response.results:
        typer.echo("No matching customers.")
        return
    typer.echo(f"{'rank':>4}  {'ecn':<12} {'score':>5}  {'name':<24} categories")
    for rank, result in enumerate(response.results, start=1):
        categories = ",".join(sorted(c.value for c in result.matched_categories))
        marker = " (degraded)" if result.degraded else ""
        typer.echo(
            f"{rank:>4}  {result.entity_key:<12} {result.ranking_score:>5}  "
            f"{result.detail.name:<24} {categories}{marker}"
        )


@app.command(name="explain")
def explain_command(
    terms: List[str] = typer.Option(..., "--term", "-t", help="Search term"),
    limit: Optional[int] = typer.Option(
        None, "--limit", "-n", help="Requested result count (default: ranking.default_limit)"
    ),
    prefix: Optional[str] = typer.Option(
        None, "--prefix", help="Collection prefix overriding the configured one (e.g. bench_)"
    ),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="JSON or YAML configuration file"
    ),
) -> None:
    """Print the FIND statement a database-backed collaborator would execute."""
    config = _load_config(config_path).get()
    if prefix is not None:
        config = dataclasses.replace(
            config,
            classification=dataclasses.replace(config.classification, collection_prefix=prefix),
        )
    if limit is None:
        limit = config.ranking.default_limit
    query = QueryBuilder.build(terms)
    if not query:
        typer.echo("Error: at least one non-blank search term is required", err=True)
        raise typer.Exit(code=2)
    if limit <= 0:
        typer.echo("Error: limit must be greater than 0", err=True)
        raise typer.Exit(code=2)
    over_fetch = limit * config.ranking.overfetch_factor
    typer.echo(build_find_statement(config.index_name(), query, over_fetch))


@app.command(name="use-cases")
def use_cases_command() -> None:
    """List the use cases and the categories each one requires."""
    for use_case in UseCase:
        categories = ", ".join(sorted(category.value for category in use_case.required))
        typer.echo(f"{use_case.name}: {categories}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
