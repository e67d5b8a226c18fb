from pydantic import BaseModel


class PromptTemplate(BaseModel):
    """The four delimiters one instruction-tuned model family expects around a user turn."""

    system_preamble: str
    user_prefix: str
    end_marker: str
    assistant_header: str


class RetrievedContext(BaseModel):
    file_name: str
    context: str


class Turn(BaseModel):
    query: str
    prompt: str
    response: str
