from pydantic import BaseModel, Field
from typing import Dict, Optional, Any

from core.contracts.models import PromptTemplate


class ModelConfig(BaseModel):
    provider: str = "local"
    name: str = "phi-3.5-mini-instruct"
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    timeout_sec: int = 60
    stream: bool = True
    parameters: Dict[str, Any] = Field(default_factory=dict)

class FormatterConfig(BaseModel):
    type: str = Field("template", description="Registered formatter name: 'template' or 'jinja'")
    family: str = Field("phi", description="Prompt family whose delimiters are used")
    template: str = Field("turn.j2", description="Jinja2 layout file, only used by the 'jinja' formatter")
    template_dir: Optional[str] = None

class SessionConfig(BaseModel):
    max_context_chunks: int = Field(3, ge=0, description="Retrieved chunks prepended to a query at most")
    chunk_size: int = Field(500, gt=0, description="Maximum characters per context document chunk")
    chunk_overlap: int = Field(50, ge=0, description="Characters shared by the bridging chunk between neighbours")


class Config(BaseModel):
    model: ModelConfig = Field(default_factory=ModelConfig, description="Generation engine settings")
    formatter: FormatterConfig = Field(default_factory=FormatterConfig, description="Prompt formatter settings")
    session: SessionConfig = Field(default_factory=SessionConfig, description="Chat session settings")
    templates: Dict[str, PromptTemplate] = Field(default_factory=dict, description="Extra or overriding prompt families")
