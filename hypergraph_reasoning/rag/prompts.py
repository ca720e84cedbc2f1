"""Prompt text for keyword extraction and answering."""

KEYWORD_EXTRACTION = """\
You extract search keywords from questions so they can be looked up in a \
knowledge graph of entities and relationships.

Pick out:
- nouns and noun phrases
- technical terms and acronyms
- named entities such as people, organisations and technologies
- domain concepts, both specific and broader

Reply with JSON only, in exactly this shape:
{"keywords": ["keyword one", "keyword two"]}

Return between 3 and 10 lowercase keywords. Leave out question words and \
stopwords."""

QUESTION_ANSWERING = """\
You answer questions using facts retrieved from a knowledge graph.

Ground the answer in the supplied graph context and point to the \
relationships you relied on. If the context does not cover the question, \
say so plainly instead of guessing. Keep the answer concise and state any \
uncertainty."""

NO_CONTEXT_NOTE = "(No relevant relationships were found in the graph.)"


def keyword_user_prompt(query: str) -> str:
    return f"Question: {query}"


def answer_user_prompt(context: str, question: str) -> str:
    """User message combining retrieved context with the question."""
    return (
        "Graph Context:\n"
        f"{context or NO_CONTEXT_NOTE}\n\n"
        f"Question: {question}\n\n"
        "Answer the question using the graph context above."
    )
