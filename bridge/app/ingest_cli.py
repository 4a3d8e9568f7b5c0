# CLI script for running document ingestion from a JSON pipeline configuration.

import argparse
import logging
import sys
from pathlib import Path

# Ensure the project root is in PYTHONPATH for correct imports when run as a script
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from bridge.app.chat_cli import build_run_context, load_pipeline_config
from bridge.config import settings
from bridge.core.ingestion_service import IngestDocument

logger = logging.getLogger(__name__)
logging.basicConfig(level=settings.log_level)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Ingest documents into the embedding store of a RAG pipeline.")
    parser.add_argument("config", type=Path, help="Path of the JSON pipeline configuration")
    parser.add_argument("--drop", action="store_true", help="Drop the stored embeddings before ingesting")
    args = parser.parse_args(argv)

    logger.info("===============================================")
    logger.info(" RAG Pipeline Ingestion CLI Started ")
    logger.info("===============================================")

    config = load_pipeline_config(args.config)
    run_context = build_run_context(config, args.config.resolve().parent)
    ingest_config = dict(config.get("ingest", {}))
    if args.drop:
        ingest_config["drop"] = True

    try:
        task = IngestDocument.model_validate({**ingest_config, "id": "ingest", "type": IngestDocument.type_name()})
        output = task.run(run_context)
        logger.info(f"Ingested {output.ingested_documents} document(s) as {output.ingested_chunks} chunk(s)")
        logger.info("-----------------------------------------------")
        logger.info(" Ingestion process completed. ")
        logger.info("-----------------------------------------------")
    except Exception as e:
        logger.error(f"An error occurred during the ingestion process: {e}", exc_info=True)
        logger.info("-----------------------------------------------")
        logger.info(" Ingestion process failed. ")
        logger.info("-----------------------------------------------")
        sys.exit(1)


if __name__ == "__main__":
    main()
