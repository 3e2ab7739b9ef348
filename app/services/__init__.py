"""External collaborators: news providers and the OpenAI oracle."""
