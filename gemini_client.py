import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from errors import TransientServiceError

logger = logging.getLogger(__name__)


@dataclass
class CompletionTool:
    """A tool the chat model may call: fixed parameter schema plus execute callback."""

    name: str
    description: str
    parameters: Dict[str, Any]
    execute: Callable[[Dict[str, Any]], Any]

    def declaration(self) -> Dict[str, Any]:
        declaration = {"name": self.name, "description": self.description}
        if self.parameters.get("properties"):
            declaration["parameters"] = self.parameters
        return declaration


@dataclass
class ToolInvocation:
    tool_name: str
    input: Dict[str, Any] = field(default_factory=dict)
    output: Any = None


@dataclass
class Completion:
    text: str = ""
    tool_invocations: List[ToolInvocation] = field(default_factory=list)


def _json_safe(value: Any) -> Any:
    return json.loads(json.dumps(value, default=str))


class GeminiClient:
    """
    Thin wrapper over google-generativeai for the three calls the app makes:
    structured extraction, tool-using chat completion and text embeddings.

    Every call carries an explicit timeout; provider errors and timeouts are
    re-raised as TransientServiceError so callers can fall back or ask the
    user to retry.
    """

    def __init__(
        self,
        api_key: str,
        chat_model: str,
        extraction_model: str,
        embedding_model: str,
        embedding_dimensions: int = 768,
        timeout: float = 30,
        max_steps: int = 5,
    ):
        if not api_key:
            raise ValueError("GEMINI_API_KEY environment variable not set")
        genai.configure(api_key=api_key)
        self.chat_model = chat_model
        self.extraction_model = extraction_model
        self.embedding_model = embedding_model
        self.embedding_dimensions = embedding_dimensions
        self.timeout = timeout
        self.max_steps = max_steps

    @classmethod
    def from_settings(cls, settings) -> "GeminiClient":
        return cls(
            api_key=settings.GEMINI_API_KEY,
            chat_model=settings.GEMINI_CHAT_MODEL,
            extraction_model=settings.GEMINI_EXTRACTION_MODEL,
            embedding_model=settings.GEMINI_EMBEDDING_MODEL,
            embedding_dimensions=settings.EMBEDDING_DIMENSIONS,
            timeout=settings.LLM_TIMEOUT_SECONDS,
            max_steps=settings.COUNSELLOR_MAX_STEPS,
        )

    @property
    def _request_options(self) -> Dict[str, Any]:
        return {"timeout": self.timeout}

    def extract_structured(self, prompt: str) -> Dict[str, Any]:
        """
        Run a JSON-mode generation and return the decoded object.

        Args:
            prompt: Extraction prompt, schema included

        Returns:
            Decoded JSON object (may be empty)
        """
        model = genai.GenerativeModel(self.extraction_model)
        try:
            response = model.generate_content(
                prompt,
                generation_config=genai.GenerationConfig(
                    response_mime_type="application/json",
                    temperature=0,
                ),
                request_options=self._request_options,
            )
        except (google_exceptions.GoogleAPIError, TimeoutError) as e:
            raise TransientServiceError(f"Structured extraction failed: {e}") from e

        payload = json.loads(response.text or "{}")
        if not isinstance(payload, dict):
            raise ValueError(f"Expected a JSON object, got {type(payload).__name__}")
        return payload

    def embed(self, text: str, task_type: str = "retrieval_query") -> List[float]:
        try:
            result = genai.embed_content(
                model=self.embedding_model,
                content=text,
                task_type=task_type,
                output_dimensionality=self.embedding_dimensions,
                request_options=self._request_options,
            )
        except (google_exceptions.GoogleAPIError, TimeoutError) as e:
            raise TransientServiceError(f"Embedding failed: {e}") from e
        return list(result["embedding"])

    def complete(
        self,
        system_prompt: str,
        messages: Sequence[Dict[str, str]],
        tools: Sequence[CompletionTool],
    ) -> Completion:
        """
        Chat completion with function calling.

        Tool calls are executed locally and their results fed back to the
        model until it answers with text or max_steps is reached.

        Args:
            system_prompt: System instruction
            messages: [{"role": "user"|"assistant", "content": str}, ...]
            tools: Tools the model may call

        Returns:
            Completion with the final text and every tool invocation
        """
        tools_by_name = {tool.name: tool for tool in tools}
        model = genai.GenerativeModel(
            self.chat_model,
            system_instruction=system_prompt,
            tools=[{"function_declarations": [tool.declaration() for tool in tools]}] if tools else None,
        )
        contents: List[Any] = [
            {"role": "user" if m["role"] == "user" else "model", "parts": [m["content"]]}
            for m in messages
            if m.get("content")
        ]
        completion = Completion()

        for step in range(self.max_steps):
            try:
                response = model.generate_content(contents, request_options=self._request_options)
            except (google_exceptions.GoogleAPIError, TimeoutError) as e:
                raise TransientServiceError(f"Chat completion failed: {e}") from e

            if not response.candidates:
                break
            content = response.candidates[0].content
            calls = []
            for part in content.parts:
                if part.function_call and part.function_call.name:
                    calls.append(part.function_call)
                elif part.text:
                    completion.text += part.text

            if not calls:
                break

            contents.append(content)
            response_parts = []
            for call in calls:
                args = dict(call.args.items()) if call.args else {}
                invocation = ToolInvocation(tool_name=call.name, input=_json_safe(args))
                tool = tools_by_name.get(call.name)
                if tool is None:
                    invocation.output = {"error": f"Unknown tool '{call.name}'"}
                else:
                    try:
                        invocation.output = _json_safe(tool.execute(args))
                    except Exception as e:
                        logger.warning(f"[COUNSELLOR] Tool {call.name} failed: {e}")
                        invocation.output = {"error": str(e)}
                completion.tool_invocations.append(invocation)
                response_parts.append(
                    genai.protos.Part(
                        function_response=genai.protos.FunctionResponse(
                            name=call.name,
                            response={"result": invocation.output},
                        )
                    )
                )
            contents.append({"role": "user", "parts": response_parts})
            logger.info(f"[COUNSELLOR] Step {step + 1}: executed {len(calls)} tool call(s)")

        return completion
