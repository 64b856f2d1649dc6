"""Local generation engine on top of llama-cpp-python.

One engine run is one call: load the model, prime the context with the
rendered prompt, then sample/emit/decode one token at a time until an
end-of-generation token, a stop tag, the token limit, or the consumer
leaving.  Everything here is blocking and must run on a worker thread.
The model is loaded fresh for every call and closed on every exit path.
"""

from __future__ import annotations

import codecs
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Protocol, Sequence

from chatstream.config import LocalModelSettings
from chatstream.errors import ContextError, ModelLoadError
from chatstream.types import Message

from .prompt import format_chat_prompt

_logger = logging.getLogger(__name__)


class LlamaModel(Protocol):
    """The subset of ``llama_cpp.Llama`` the engine drives."""

    def tokenize(
        self, text: bytes, add_bos: bool = True, special: bool = False,
    ) -> list[int]: ...

    def eval(self, tokens: Sequence[int]) -> None: ...

    def sample(self, **kwargs: float) -> int: ...

    def detokenize(
        self, tokens: list[int], prev_tokens: list[int] | None = None,
        special: bool = False,
    ) -> bytes: ...

    def is_eog(self, token: int) -> bool: ...

    def close(self) -> None: ...


ModelFactory = Callable[[str, LocalModelSettings], LlamaModel]
EmitFn = Callable[[str], bool]
CancelledFn = Callable[[], bool]


def load_llama(model_path: str, settings: LocalModelSettings) -> LlamaModel:
    """Load a GGUF model with llama-cpp-python (the ``local`` extra)."""
    try:
        import llama_cpp
    except ImportError as e:
        raise ModelLoadError(
            "llama-cpp-python is not installed; install chatstream[local]"
        ) from e

    llama = llama_cpp.Llama(
        model_path=model_path,
        n_ctx=settings.context_size,
        n_batch=settings.batch_size,
        n_gpu_layers=settings.gpu_layers,
        verbose=False,
    )
    return _LlamaBackend(llama, llama_cpp.llama_token_is_eog)


class _LlamaBackend:
    """``llama_cpp.Llama`` plus the vocab's end-of-generation test.

    ``Llama`` only exposes the EOS id, but chat models often end a turn
    with a separate token (``<|eot_id|>``, ``<|im_end|>``, ``<end_of_turn>``).
    """

    def __init__(self, llama: Any, token_is_eog: Callable[[Any, int], bool]) -> None:
        self._llama = llama
        self._vocab = llama._model.vocab
        self._token_is_eog = token_is_eog

    def is_eog(self, token: int) -> bool:
        return bool(self._token_is_eog(self._vocab, token))

    def __getattr__(self, name: str) -> Any:
        return getattr(self._llama, name)


@dataclass
class Sampler:
    """Greedy or temperature sampling, chosen once per call."""

    temperature: float
    greedy: bool
    accepted: list[int] = field(default_factory=list)

    @classmethod
    def for_temperature(cls, temperature: float, epsilon: float = 0.01) -> "Sampler":
        return cls(temperature=temperature, greedy=temperature < epsilon)

    def sample(self, model: LlamaModel) -> int:
        if self.greedy:
            return model.sample(temp=0.0)
        # Disable top-k / top-p / min-p so only temperature shapes the draw
        return model.sample(temp=self.temperature, top_k=0, top_p=1.0, min_p=0.0)

    def accept(self, token: int) -> None:
        self.accepted.append(token)


@dataclass
class GenerationStats:
    prompt_tokens: int = 0
    generated_tokens: int = 0
    stop_reason: str = ""
    latency_ms: float = 0


class LocalGenerationEngine:
    """Runs one blocking generation against a model file."""

    def __init__(
        self,
        model_path: str,
        settings: LocalModelSettings | None = None,
        model_factory: ModelFactory | None = None,
    ) -> None:
        self.model_path = model_path
        self.settings = settings or LocalModelSettings()
        self._model_factory = model_factory or load_llama

    def run(
        self,
        messages: Sequence[Message],
        temperature: float,
        emit: EmitFn,
        cancelled: CancelledFn | None = None,
    ) -> GenerationStats:
        """Generate a reply, calling ``emit(fragment)`` for each piece of text.

        ``emit`` returning ``False``, or ``cancelled()`` returning ``True``
        before a step, stops generation without error.
        """
        start = time.monotonic()
        model = self._load()
        try:
            stats = self._generate(model, messages, temperature, emit, cancelled)
        finally:
            model.close()
        stats.latency_ms = (time.monotonic() - start) * 1000
        _logger.info(
            "Local generation finished: %d prompt + %d generated tokens, stop=%s",
            stats.prompt_tokens, stats.generated_tokens, stats.stop_reason,
        )
        return stats

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _load(self) -> LlamaModel:
        if not Path(self.model_path).is_file():
            raise ModelLoadError(f"Model file not found: {self.model_path}")
        _logger.info("Loading local model: %s", self.model_path)
        try:
            return self._model_factory(self.model_path, self.settings)
        except ModelLoadError:
            raise
        except Exception as e:
            raise ModelLoadError(f"Failed to load model: {e}") from e

    def _generate(
        self,
        model: LlamaModel,
        messages: Sequence[Message],
        temperature: float,
        emit: EmitFn,
        cancelled: CancelledFn | None,
    ) -> GenerationStats:
        settings = self.settings
        prompt = format_chat_prompt(messages)

        try:
            tokens = model.tokenize(prompt.encode("utf-8"), add_bos=True, special=True)
        except Exception as e:
            raise ContextError(f"Failed to tokenize: {e}") from e
        if not tokens:
            raise ContextError("Prompt produced no tokens")
        if len(tokens) > settings.context_size:
            raise ContextError(
                f"Prompt of {len(tokens)} tokens exceeds the context window "
                f"of {settings.context_size}"
            )

        stats = GenerationStats(prompt_tokens=len(tokens))
        self._decode(model, tokens, "prompt")

        sampler = Sampler.for_temperature(temperature, settings.greedy_epsilon)
        utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        n_past = len(tokens)
        stats.stop_reason = "max_tokens"

        for _ in range(settings.max_tokens):
            # Once per token, even when the token decodes to no text
            if cancelled is not None and cancelled():
                stats.stop_reason = "cancelled"
                break

            token = sampler.sample(model)
            sampler.accept(token)
            stats.generated_tokens = len(sampler.accepted)

            if model.is_eog(token):
                stats.stop_reason = "eog"
                break

            piece = utf8.decode(model.detokenize([token], special=True))
            text, stopped = self._cut_stop_tag(piece)
            if text and not emit(text):
                stats.stop_reason = "cancelled"
                break
            if stopped:
                stats.stop_reason = "stop_tag"
                break

            if n_past >= settings.context_size:
                raise ContextError(
                    f"Context window of {settings.context_size} tokens exhausted"
                )
            self._decode(model, [token], "token")
            n_past += 1

        return stats

    def _cut_stop_tag(self, piece: str) -> tuple[str, bool]:
        """Return the text before the first stop tag and whether one was found."""
        cut = min(
            (piece.find(tag) for tag in self.settings.stop_tags if tag in piece),
            default=-1,
        )
        if cut < 0:
            return piece, False
        return piece[:cut], True

    @staticmethod
    def _decode(model: LlamaModel, tokens: Sequence[int], what: str) -> None:
        try:
            model.eval(tokens)
        except Exception as e:
            raise ContextError(f"Failed to decode {what}: {e}") from e
