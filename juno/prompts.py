"""Prompt templates."""

from __future__ import annotations

from juno.models import Message

CHAT_INSTRUCTIONS = """$USER will ask both generic and specific questions that you will try to answer as best as possible.

Always adhere to the following rules:

1. Respond in markdown format
2. When providing code blocks you have to qualify it with what language. e.g ```javascript or ```typescript.
3. Always answer as $ASSISTANT and avoid using phrases as "as a large language model" etc.
4. Use the scratchpad if relevant to the question"""

SUGGEST_IMPROVEMENTS_INSTRUCTIONS = """$USER will ask you how to improve their code. You should use the provided code (if any) and respond with practical solutions.

Always adhere to the following rules:

1. Respond in markdown format
2. When providing code blocks you have to qualify it with what language. e.g ```javascript or ```typescript.
3. Always answer as $ASSISTANT and avoid using phrases as "as a large language model" etc.
4. Use the scratchpad if relevant to the question
5. Apply common structural/creational/behavioural software patterns to your edits when relevant"""

SUGGEST_IMPROVEMENTS_PROMPT = "How may I improve this code?"

CREATE_CODE_INSTRUCTIONS = """$USER will give you instructions to help write functions.
You may ask for clarification if needed, but otherwise you should only output $LANGUAGE code.
Provide explanations of the code only if the user asks for them.
Make sure to respond with the code inside a markdown code block (e.g. ```typescript or ```python)."""

QUERY_REPO_SYSTEM_MESSAGE = """You are a helpful assistant. You are to answer the users question as best as possible while respecting the following rules:

1. Do not make up an answer
2. Use the available functions to retrieve information
3. Continue search for information until you can confidently answer the question

IMPORTANT: Do not answer the question without retrieving context"""

_QUERY_REPO_USER_TEMPLATE = (
    "Use the getContext function to search the code base for information to answer the following "
    "question. Please present relevant code blocks if appropriate. If you are not confident in your "
    "answer, you can use the getContext function multiple times with new queries to help you get more "
    "information. Do not reference the getContext function in your answer.\n\nQuestion: {question}"
)

_SCRATCHPAD_PREAMBLE = """The below scratchpad is provided by the user
so you are aware of the script they are working on.
Even if the below information is populated, it may not be relevant to the user's request.
Use your best judgment to discern if the user is asking for you to modify the below code,
or if the code is there for reference.

SCRATCHPAD:

"""


def create_system_message(
    instruction: str,
    *,
    assistant_name: str,
    user_name: str | None = None,
    language: str | None = None,
    scratchpad: str | None = None,
) -> str:
    """Personalise ``instruction`` and prefix it with the assistant persona.

    ``$USER``, ``$LANGUAGE`` and ``$ASSISTANT`` are substituted. A non-empty
    scratchpad (the code the user is looking at) is appended as reference.
    """

    user = f"The USER (Name: {user_name})" if user_name else "The USER"
    personalized = (
        instruction.replace("$USER", user)
        .replace("$LANGUAGE", language or "")
        .replace("$ASSISTANT", assistant_name)
    )
    language_prefix = f"{language} " if language else ""
    message = f"You are a {language_prefix}coding assistant named {assistant_name}.\n{personalized}"
    if scratchpad:
        message = f"{message}\n\n{_SCRATCHPAD_PREAMBLE}{scratchpad}"
    return message


def initialize_conversation(system_message: str) -> list[Message]:
    return [Message.system(system_message)]


def query_repo_user_message(question: str) -> str:
    return _QUERY_REPO_USER_TEMPLATE.format(question=question)
