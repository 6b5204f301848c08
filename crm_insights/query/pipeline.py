"""Query Pipeline: parse -> build SQL -> safety check.

The compiled SQL is handed back to the caller; nothing here executes it.

Usage:
    python -m crm_insights.query.pipeline "wie viele leads aus deutschland" <tenant_id>
"""

from datetime import datetime
import sys

from crm_insights.errors import UnsafeQueryError
from crm_insights.logger import log
from crm_insights.models import CompiledQuery
from crm_insights.query.parser import NaturalLanguageQueryParser
from crm_insights.query.sql_builder import SQLQueryBuilder


def compile_query(
    query: str,
    tenant_id: str,
    context: str | None = None,
    now: datetime | None = None,
) -> CompiledQuery:
    """Turn a natural-language question into validated, tenant-scoped SQL.

    Args:
        query: Raw user text (German or English).
        tenant_id: Bound as ``$1`` in every template.
        context: Previous query type, tried first during classification.
        now: Reference time for relative timeframes.

    Raises:
        UnsupportedQueryTypeError: The query could not be classified.
        UnsafeQueryError: The generated SQL failed the denylist check.
    """
    builder = SQLQueryBuilder(tenant_id)
    classification = NaturalLanguageQueryParser().parse_query(query, context=context, now=now)
    result = builder.build_query(classification)

    if not builder.validate_query(result.sql):
        log.warning(f"Rejected generated SQL for tenant {tenant_id}: {result.sql!r}")
        raise UnsafeQueryError("Generated SQL failed the safety check")

    log.info(
        f"Compiled {classification.type} query ({classification.intent}) "
        f"with {len(result.params)} params"
    )
    return CompiledQuery(classification=classification, result=result)


def main():
    print("=" * 60)
    print("Natural-Language Query Compiler")
    print("=" * 60)

    if len(sys.argv) < 3:
        print('usage: python -m crm_insights.query.pipeline "<query>" <tenant_id>')
        sys.exit(2)

    compiled = compile_query(sys.argv[1], sys.argv[2])
    c = compiled.classification

    print(f"\n  Type:        {c.type}")
    print(f"  Intent:      {c.intent}")
    print(f"  Confidence:  {c.confidence:.2f}")
    print(f"  Entities:    {c.entities}")
    print(f"\n{compiled.result.sql}\n")
    print(f"  Params: {compiled.result.params}")


if __name__ == "__main__":
    main()
