from typing import Dict, Tuple

from openai import OpenAI

_clients: Dict[Tuple[str, float], OpenAI] = {}

def get_openai(api_key: str, timeout: float = 30.0) -> OpenAI:
    """One client per (key, timeout). Retries are disabled: callers see the first failure."""
    key = (api_key, float(timeout))
    client = _clients.get(key)
    if client is None:
        client = OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        _clients[key] = client
    return client

def create_embeddings(client: OpenAI, model: str, texts) -> list:
    resp = client.embeddings.create(model=model, input=texts)
    return [d.embedding for d in resp.data]
