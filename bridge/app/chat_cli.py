# CLI script for a RAG chat session driven by a JSON pipeline configuration.
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List

# Ensure the project root is in PYTHONPATH when run as a script
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from pydantic import ValidationError

from bridge.config import settings
from bridge.core.chat_service import ChatCompletion
from bridge.core.run_context import FlowInfo, RunContext
from bridge.exceptions import BridgeError
from bridge.models import ChatMessage, ChatMessageType, labels_from_map
from bridge.workflow.flows import FlowDefinition, InMemoryExecutionQueue, InMemoryFlowRepository

logger = logging.getLogger(__name__)
logging.basicConfig(level=settings.log_level)


def load_pipeline_config(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def build_run_context(config: Dict[str, Any], working_dir: Path) -> RunContext:
    """Create the run context of the session, with in-memory flows and execution queue."""
    repository = InMemoryFlowRepository()
    for flow in config.get("flows", []):
        repository.save(FlowDefinition.model_validate(flow))

    flow_info = FlowInfo(
        namespace=config.get("namespace", "cli"),
        flow_id=config.get("flow_id", "chat"),
        tenant_id=config.get("tenant_id"),
    )
    return RunContext(
        flow_info,
        labels=labels_from_map(config.get("labels")),
        flow_repository=repository,
        execution_queue=InMemoryExecutionQueue(),
        working_dir=working_dir,
    )


def chat_turn(chat_config: Dict[str, Any], messages: List[ChatMessage], run_context: RunContext):
    task = ChatCompletion.model_validate(
        {**chat_config, "id": "chat", "type": ChatCompletion.type_name(), "messages": [m.model_dump() for m in messages]}
    )
    return task.run(run_context)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Chat with a RAG pipeline configured in a JSON file.")
    parser.add_argument("config", type=Path, help="Path of the JSON pipeline configuration")
    args = parser.parse_args(argv)

    logger.info("===============================================")
    logger.info(" RAG Chat CLI Started ")
    logger.info("===============================================")

    config = load_pipeline_config(args.config)
    run_context = build_run_context(config, args.config.resolve().parent)
    chat_config = config.get("chat", {})

    messages: List[ChatMessage] = []
    if config.get("system_prompt"):
        messages.append(ChatMessage(type=ChatMessageType.SYSTEM, content=config["system_prompt"]))

    print("Chat interface initialized. Type your questions or 'exit'/'quit' to end.")

    try:
        while True:
            query = input("You: ")
            if query.lower() in ["exit", "quit"]:
                logger.info("User requested to exit chat session.")
                print("Exiting chat. Goodbye!")
                break

            if not query.strip():
                continue

            messages.append(ChatMessage(type=ChatMessageType.USER, content=query))
            try:
                output = chat_turn(chat_config, messages, run_context)
            except (BridgeError, ValidationError) as e:
                logger.error(f"Chat turn failed: {e}", exc_info=True)
                print(f"Error: {e}")
                messages.pop()
                continue

            messages.append(ChatMessage(type=ChatMessageType.AI, content=output.text_output))
            print(f"AI: {output.text_output}")
            for execution in output.tool_executions:
                print(f"  [tool] {execution.request_name} -> {execution.result}")
            for source in output.sources:
                print(f"  [source] {source.metadata.get('url') or source.metadata.get('file_name') or source.content[:60]}")

    except KeyboardInterrupt:
        logger.info("Chat interrupted by user (KeyboardInterrupt).")
        print("\nChat session ended.")
    finally:
        submitted = run_context.execution_queue.executions
        if submitted:
            logger.info(f"Executions submitted during the session: {[e.id for e in submitted]}")
        logger.info("-----------------------------------------------")
        logger.info(" Chat CLI Session Ended ")
        logger.info("-----------------------------------------------")


if __name__ == "__main__":
    main()
