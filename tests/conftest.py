"""Shared fixtures: fake llama model and SSE transports."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Callable

import httpx
import pytest


class FakeLlama:
    """Scripted stand-in for ``llama_cpp.Llama``.

    ``script`` is the sequence of tokens ``sample()`` returns; once it runs
    out, ``repeat`` (if set) is returned forever, otherwise EOS.
    """

    EOS = 2

    def __init__(
        self,
        script: list[int] | None = None,
        vocab: dict[int, bytes] | None = None,
        prompt_tokens: list[int] | None = None,
        repeat: int | None = None,
        fail_eval_on: int | None = None,
        eog_tokens: set[int] | None = None,
    ) -> None:
        self.script = list(script or [])
        self.vocab = vocab or {}
        self.prompt_tokens = prompt_tokens if prompt_tokens is not None else [1, 10, 11, 12]
        self.repeat = repeat
        self.fail_eval_on = fail_eval_on
        self.eog_tokens = {self.EOS} | (eog_tokens or set())
        self.evals: list[list[int]] = []
        self.sample_calls: list[dict] = []
        self.tokenize_calls: list[tuple[bytes, bool, bool]] = []
        self.closed = False

    def tokenize(self, text: bytes, add_bos: bool = True, special: bool = False) -> list[int]:
        self.tokenize_calls.append((text, add_bos, special))
        return list(self.prompt_tokens)

    def eval(self, tokens) -> None:
        self.evals.append(list(tokens))
        if self.fail_eval_on is not None and len(self.evals) >= self.fail_eval_on:
            raise RuntimeError("llama_decode returned -1")

    def sample(self, **kwargs) -> int:
        self.sample_calls.append(kwargs)
        if self.script:
            return self.script.pop(0)
        if self.repeat is not None:
            return self.repeat
        return self.EOS

    def detokenize(self, tokens, prev_tokens=None, special: bool = False) -> bytes:
        return b"".join(self.vocab.get(t, b"") for t in tokens)

    def is_eog(self, token: int) -> bool:
        return token in self.eog_tokens

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def model_file(tmp_path: Path) -> Path:
    path = tmp_path / "gemma-3-1b-it-Q4_K_M.gguf"
    path.write_bytes(b"GGUF\x03\x00\x00\x00")
    return path


def factory_for(model: FakeLlama) -> Callable:
    def _factory(model_path, settings):
        return model
    return _factory


def sse_transport(
    chunks: list[bytes],
    status_code: int = 200,
    requests: list[httpx.Request] | None = None,
    fail_after: Exception | None = None,
) -> httpx.MockTransport:
    """MockTransport whose response body arrives as the given byte chunks."""

    async def body():
        for chunk in chunks:
            yield chunk
        if fail_after is not None:
            raise fail_after

    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        return httpx.Response(status_code, content=body())

    return httpx.MockTransport(handler)


def sse_line(content: str) -> bytes:
    return f"data: {json.dumps({'choices': [{'delta': {'content': content}}]})}\n\n".encode()
