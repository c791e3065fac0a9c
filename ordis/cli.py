"""Command-line entry point: ``ordis extract --schema ... --input ...``.

Prints the extraction result as JSON on stdout; logs go to stderr.
Exit status is 0 on success, 1 on failure, 2 on usage errors.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .config import settings
from .errors import SchemaError
from .models import ExtractionRequest, LLMConfig
from .pipeline import extract
from .retry import RetryConfig
from .schema import load_schema

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ordis",
        description="Schema-first structured extraction with an OpenAI-compatible LLM.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    extract_cmd = subparsers.add_parser("extract", help="Extract structured data from a text file")
    extract_cmd.add_argument("--schema", required=True, help="Path to schema definition file (JSON)")
    extract_cmd.add_argument("--input", required=True, help="Path to input text file")
    extract_cmd.add_argument("--base", help=f"Base URL of the API (default: {settings.LLM_BASE_URL})")
    extract_cmd.add_argument("--model", help=f"Model name (default: {settings.LLM_MODEL})")
    extract_cmd.add_argument("--api-key", help="Bearer token for the API (default: $LLM_API_KEY)")
    extract_cmd.add_argument("--max-retries", type=int, help="Retries for network/rate-limit failures")
    extract_cmd.add_argument("--debug", action="store_true", help="Enable verbose debug output")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        schema = load_schema(args.schema)
    except SchemaError as e:
        logger.error("%s", e.message)
        return 1

    try:
        input_text = Path(args.input).read_text(encoding="utf-8")
    except OSError as e:
        logger.error("Cannot read input file %s: %s", args.input, e)
        return 1

    retries = RetryConfig(max_retries=args.max_retries) if args.max_retries is not None else None
    llm_config = LLMConfig.from_settings(
        base_url=args.base,
        model=args.model,
        api_key=args.api_key,
        retries=retries,
    )
    logger.debug("Extracting with base_url=%s model=%s", llm_config.base_url, llm_config.model)

    result = asyncio.run(extract(ExtractionRequest(input=input_text, schema=schema, llm_config=llm_config)))
    print(result.model_dump_json(by_alias=True, indent=2))
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
