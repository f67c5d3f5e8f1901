from curriculum_pipeline.generation.client import GenerationClient, LangChainGenerationClient
from curriculum_pipeline.generation.gateway import GenerationGateway, build_topic_text

__all__ = [
    "GenerationClient",
    "LangChainGenerationClient",
    "GenerationGateway",
    "build_topic_text",
]
