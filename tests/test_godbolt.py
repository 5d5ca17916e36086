import httpx
import orjson
import pytest

from conftest import make_message, sent_messages
from Warden import text
from Warden.dispatcher import DispatchOutcome, Dispatcher
from Warden.errors import ExternalServiceError
from Warden.godbolt import (
    GodboltClient,
    clean_semver,
    sort_targets,
    strip_code_fence,
    truncate_output,
)
from Warden.state import TargetInfo

COMPILERS = [
    {
        "id": "nightly",
        "name": "rustc nightly",
        "lang": "rust",
        "compilerType": "",
        "semver": "nightly",
        "instructionSet": "amd64",
    },
    {
        "id": "r1700",
        "name": "rustc 1.70.0",
        "lang": "rust",
        "compilerType": "",
        "semver": "1.70.0",
        "instructionSet": "amd64",
    },
    {
        "id": "r1450",
        "name": "rustc 1.45.2",
        "lang": "rust",
        "compilerType": "",
        "semver": "rustc 1.45.2",
        "instructionSet": "amd64",
    },
    {
        "id": "beta",
        "name": "rustc beta",
        "lang": "rust",
        "compilerType": "",
        "semver": "Beta",
        "instructionSet": "amd64",
    },
    {
        "id": "mrustc",
        "name": "mrustc",
        "lang": "rust",
        "compilerType": "mrustc",
        "semver": "mrustc (!)",
        "instructionSet": "amd64",
    },
]


class _Upstream:
    """Fake godbolt.org; records compile requests."""

    def __init__(self, *, compile_code: int = 0, fail_with: int | None = None):
        self.compile_code = compile_code
        self.fail_with = fail_with
        self.compile_requests: list[tuple[str, dict]] = []
        self.list_requests = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.fail_with is not None:
            return httpx.Response(self.fail_with)
        if request.method == "GET" and request.url.path == "/api/compilers/rust":
            self.list_requests += 1
            return httpx.Response(200, content=orjson.dumps(COMPILERS))
        if request.method == "POST" and request.url.path.endswith("/compile"):
            target = request.url.path.split("/")[3]
            self.compile_requests.append((target, orjson.loads(request.content)))
            body = {
                "code": self.compile_code,
                "asm": [{"text": "example::main:"}, {"text": "        ret"}],
                "stderr": [{"text": "error[E0425]: cannot find value `x`"}],
            }
            return httpx.Response(200, content=orjson.dumps(body))
        return httpx.Response(404)


def _client(settings, upstream: _Upstream) -> GodboltClient:
    http = httpx.AsyncClient(
        base_url="https://godbolt.test", transport=httpx.MockTransport(upstream.handler)
    )
    return GodboltClient(settings, client=http)


def test_clean_semver():
    assert clean_semver("rustc 1.45.2") == "1.45.2"
    assert clean_semver("Beta") == "beta"
    assert clean_semver("mrustc (!)") == "mrustc"


def test_sort_targets_order():
    def t(semver):
        return TargetInfo(semver, semver, "rust", "", semver, "amd64")

    ranked = sort_targets([t("1.45.2"), t("mrustc"), t("nightly"), t("1.70.0"), t("beta")])
    assert [x.semver for x in ranked] == ["beta", "nightly", "mrustc", "1.70.0", "1.45.2"]


def test_strip_code_fence():
    assert strip_code_fence("```rust\nfn main() {}\n```") == "fn main() {}"
    assert strip_code_fence("```fn main() {}```") == "fn main() {}"
    assert strip_code_fence("fn main() {}") == "fn main() {}"


def test_truncate_output():
    assert truncate_output("a\nb") == "a\nb"
    long = "\n".join(str(i) for i in range(100))
    out = truncate_output(long, max_lines=3)
    assert out.startswith("0\n1\n2")
    assert out.endswith("(output truncated)")
    assert len(truncate_output("x" * 5000)) < 2000


@pytest.mark.asyncio
async def test_fetch_targets_cleans_semver(settings):
    gb = _client(settings, _Upstream())
    targets = await gb.fetch_targets()
    assert {t.semver for t in targets} == {"nightly", "1.70.0", "1.45.2", "beta", "mrustc"}
    await gb.aclose()


@pytest.mark.asyncio
async def test_compile_sends_flags(settings):
    upstream = _Upstream()
    gb = _client(settings, upstream)
    result = await gb.compile("nightly", "pub fn f() {}")
    assert result.success is True
    assert "example::main:" in result.asm
    target, body = upstream.compile_requests[0]
    assert target == "nightly"
    assert body["source"] == "pub fn f() {}"
    assert body["options"]["userArguments"].endswith("--color=never")
    await gb.aclose()


@pytest.mark.asyncio
async def test_http_error_is_external_service_error(settings):
    gb = _client(settings, _Upstream(fail_with=503))
    with pytest.raises(ExternalServiceError) as ei:
        await gb.fetch_targets()
    assert ei.value.status == 503
    await gb.aclose()


@pytest.mark.asyncio
async def test_timeout_is_external_service_error(settings):
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    http = httpx.AsyncClient(
        base_url="https://godbolt.test", transport=httpx.MockTransport(handler)
    )
    gb = GodboltClient(settings, client=http)
    with pytest.raises(ExternalServiceError):
        await gb.compile("nightly", "fn main() {}")
    await gb.aclose()


def _dispatcher(registry, state, gateway, settings, upstream) -> Dispatcher:
    return Dispatcher(
        registry=registry,
        state=state,
        gateway=gateway,
        settings=settings,
        godbolt=_client(settings, upstream),
    )


@pytest.mark.asyncio
async def test_godbolt_command_defaults_to_nightly(registry, state, gateway, settings):
    upstream = _Upstream()
    d = _dispatcher(registry, state, gateway, settings, upstream)
    outcome = await d.handle_message(make_message("?godbolt ```rust\npub fn f() {}\n```"))
    assert outcome == DispatchOutcome.COMPLETED
    assert upstream.compile_requests[0][0] == "nightly"
    assert upstream.compile_requests[0][1]["source"] == "pub fn f() {}"
    assert sent_messages(gateway)[-1].startswith("```x86asm\nexample::main:")
    # The refreshed list is reused by the next invocation
    await d.handle_message(make_message("?godbolt 1.70.0 ```rust\npub fn f() {}\n```"))
    assert upstream.list_requests == 1
    assert upstream.compile_requests[1][0] == "r1700"


@pytest.mark.asyncio
async def test_godbolt_compile_error_shows_stderr(registry, state, gateway, settings):
    d = _dispatcher(registry, state, gateway, settings, _Upstream(compile_code=1))
    await d.handle_message(make_message("?godbolt ```fn main() { x }```"))
    assert sent_messages(gateway)[-1].startswith("```rust\nerror[E0425]")


@pytest.mark.asyncio
async def test_godbolt_unknown_version(registry, state, gateway, settings):
    d = _dispatcher(registry, state, gateway, settings, _Upstream())
    outcome = await d.handle_message(make_message("?godbolt 0.0.1 ```fn main() {}```"))
    assert outcome == DispatchOutcome.USER_ERROR
    assert "?targets" in sent_messages(gateway)[-1]


@pytest.mark.asyncio
async def test_godbolt_upstream_down_reports_unavailable(registry, state, gateway, settings):
    d = _dispatcher(registry, state, gateway, settings, _Upstream(fail_with=502))
    outcome = await d.handle_message(make_message("?targets"))
    # Refresh failure leaves an empty list, which the handler reports
    assert outcome == DispatchOutcome.USER_ERROR
    assert sent_messages(gateway)[-1] != text.GENERIC_FAILURE


@pytest.mark.asyncio
async def test_targets_listing_sorted(registry, state, gateway, settings):
    d = _dispatcher(registry, state, gateway, settings, _Upstream())
    await d.handle_message(make_message("?targets"))
    body = sent_messages(gateway)[-1]
    assert body.index("beta:") < body.index("nightly:") < body.index("1.70.0:")
    assert body.index("1.70.0:") < body.index("1.45.2:")
