"""Google GenAI client construction."""
from google import genai


def get_genai_client(api_key: str) -> genai.Client:
    """Get a Gemini Developer API client authenticated with *api_key*."""
    return genai.Client(api_key=api_key)
