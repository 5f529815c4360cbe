"""
Script export - compiles a graph snapshot into a runnable LangChain script.
脚本导出 —— 将图快照编译为可运行的 LangChain Python 脚本。

Layout of the generated module:
生成的模块结构：

    docstring
    imports            (only those the present roles need / 仅导入实际用到的)
    helper functions   (only those referenced / 仅输出被引用的辅助函数)
    def run_pipeline(inputs: dict) -> dict:
        one block per node, in topological order  / 每个节点一个语句块，按拓扑顺序
        return {sink_id: sink_variable, ...}
    __main__ guard

Edges become data flow: a node's input expression is the variable of its
only producer, a list of producer variables for fan-in, or `inputs` when
it has none. Nodes left over by a cycle are emitted last and lose their
references to producers not yet emitted, so the script never names an
undefined variable. Dangling edges are skipped silently.
边被编译为数据流：节点的输入表达式为唯一上游的变量；多个上游时为变量列表；没有上游时为 `inputs`。
因环而无法排序的节点放在最后输出，并丢弃对尚未定义的上游变量的引用，保证脚本中不会出现未定义名称。
悬空边直接忽略。
"""

from __future__ import annotations

import keyword
import logging
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from compiler.roles import NodeRole, infer_role, resolve_settings
from dag.graph import FlowGraph
from schema import FlowEdge, FlowNode, GraphSnapshot

logger = logging.getLogger(__name__)

INDENT = "    "

_STDLIB_MODULES = {"os", "smtplib", "email.message", "pathlib"}


# ======================================================================
# Helper functions emitted into the script
# 输出到脚本中的辅助函数
# ======================================================================

_HELPER_SOURCES: dict[str, str] = {
    "_as_text": '''\
def _as_text(value):
    """Flatten any upstream value into plain text."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        return "\\n\\n".join(_as_text(item) for item in value)
    if isinstance(value, dict):
        return "\\n".join(f"{key}: {_as_text(item)}" for key, item in value.items())
    if hasattr(value, "page_content"):
        return value.page_content
    if hasattr(value, "content"):
        return _as_text(value.content)
    return str(value)
''',
    "_as_texts": '''\
def _as_texts(value):
    """Split an upstream value into a list of texts."""
    if isinstance(value, (list, tuple)):
        return [_as_text(item) for item in value]
    return [_as_text(value)]
''',
    "_deliver": '''\
def _deliver(destination, payload):
    """Print the payload for a generic output node and pass it through."""
    text = _as_text(payload)
    print(f"[{destination}] {text}")
    return text
''',
    "_send_email": '''\
def _send_email(to, subject, body):
    """Send `body` through the SMTP server configured in the environment."""
    message = EmailMessage()
    message["From"] = os.environ.get("SMTP_FROM", "neuroflow@localhost")
    message["To"] = to or os.environ.get("SMTP_TO", "")
    message["Subject"] = subject
    message.set_content(body)
    with smtplib.SMTP(os.environ.get("SMTP_HOST", "localhost")) as smtp:
        smtp.send_message(message)
    return body
''',
}

# Helpers other helpers call, and imports each helper needs.
# 辅助函数之间的依赖，以及每个辅助函数需要的导入。
_HELPER_DEPENDENCIES: dict[str, tuple[str, ...]] = {
    "_as_text": (),
    "_as_texts": ("_as_text",),
    "_deliver": ("_as_text",),
    "_send_email": (),
}
_HELPER_IMPORTS: dict[str, tuple[tuple[str, str | None], ...]] = {
    "_send_email": (("os", None), ("smtplib", None), ("email.message", "EmailMessage")),
}

RESERVED_NAMES = frozenset(
    {"inputs", "run_pipeline", "value", "print", "open", "bool", "str", "dict", "list"}
    | set(_HELPER_SOURCES)
)


# ======================================================================
# Per-node rendering context
# 单个节点的渲染上下文
# ======================================================================

@dataclass
class BlockContext:
    """Everything a role template needs to render one node's block."""
    node: FlowNode
    var: str                                  # 节点输出变量名
    source: str                               # 输入表达式
    has_upstream: bool                        # 是否存在上游节点
    settings: BaseModel                       # 类型化配置
    claim: Callable[[str], str]               # 申请辅助变量名
    imports: set[tuple[str, str | None]] = field(default_factory=set)
    helpers: set[str] = field(default_factory=set)

    def aux(self, suffix: str) -> str:
        return self.claim(f"{self.var}_{suffix}")

    def text(self) -> str:
        self.helpers.add("_as_text")
        return f"_as_text({self.source})"

    def texts(self) -> str:
        self.helpers.add("_as_texts")
        return f"_as_texts({self.source})"

    def use(self, module: str, name: str | None = None) -> None:
        self.imports.add((module, name))


# ----------------------------------------------------------------------
# Role templates: each returns the block's statement lines (unindented)
# 角色模板：每个函数返回该节点的语句行（不含缩进）
# ----------------------------------------------------------------------

def _trigger_default(ctx: BlockContext, empty: str) -> str:
    # A trigger fed by other nodes falls back to their output.
    return ctx.source if ctx.has_upstream else empty


def _render_chat_input(ctx: BlockContext) -> list[str]:
    return [f"{ctx.var} = inputs.get({ctx.node.id!r}, {_trigger_default(ctx, repr(''))})"]


def _render_webhook(ctx: BlockContext) -> list[str]:
    return [f"{ctx.var} = inputs.get({ctx.node.id!r}, {_trigger_default(ctx, '{}')})"]


def _render_file_upload(ctx: BlockContext) -> list[str]:
    ctx.use("pathlib", "Path")
    path = ctx.aux("path")
    return [
        f"{path} = inputs.get({ctx.node.id!r}, {_trigger_default(ctx, repr(''))})",
        f"{ctx.var} = Path({path}).read_text(encoding=\"utf-8\") if {path} else \"\"",
    ]


def _render_trigger(ctx: BlockContext) -> list[str]:
    return [f"{ctx.var} = inputs.get({ctx.node.id!r}, {_trigger_default(ctx, 'None')})"]


def _render_llm(ctx: BlockContext) -> list[str]:
    s = ctx.settings
    ctx.use("langchain_openai", "ChatOpenAI")
    ctx.use("langchain_core.messages", "HumanMessage")
    llm = ctx.aux("llm")
    messages = [f"HumanMessage(content={ctx.text()})"]
    if s.system_prompt:
        ctx.use("langchain_core.messages", "SystemMessage")
        messages.insert(0, f"SystemMessage(content={s.system_prompt!r})")
    return [
        f"{llm} = ChatOpenAI(model={s.model!r}, temperature={s.temperature!r})",
        f"{ctx.var} = {llm}.invoke([{', '.join(messages)}]).content",
    ]


def _render_text_splitter(ctx: BlockContext) -> list[str]:
    s = ctx.settings
    ctx.use("langchain_text_splitters", "RecursiveCharacterTextSplitter")
    splitter = ctx.aux("splitter")
    return [
        f"{splitter} = RecursiveCharacterTextSplitter(chunk_size={s.chunk_size}, chunk_overlap={s.chunk_overlap})",
        f"{ctx.var} = {splitter}.split_text({ctx.text()})",
    ]


def _render_web_scraper(ctx: BlockContext) -> list[str]:
    ctx.use("langchain_community.document_loaders", "WebBaseLoader")
    return [f"{ctx.var} = WebBaseLoader({ctx.texts()}).load()"]


def _render_image_gen(ctx: BlockContext) -> list[str]:
    ctx.use("langchain_community.utilities.dalle_image_generator", "DallEAPIWrapper")
    return [f"{ctx.var} = DallEAPIWrapper().run({ctx.text()})"]


def _render_transcribe(ctx: BlockContext) -> list[str]:
    ctx.use("openai", "OpenAI")
    audio = ctx.aux("audio")
    return [
        f"with open({ctx.text()}, \"rb\") as {audio}:",
        f"{INDENT}{ctx.var} = OpenAI().audio.transcriptions.create(model=\"whisper-1\", file={audio}).text",
    ]


def _render_code_interpreter(ctx: BlockContext) -> list[str]:
    ctx.use("langchain_experimental.utilities", "PythonREPL")
    return [f"{ctx.var} = PythonREPL().run({ctx.text()})"]


def _render_processing(ctx: BlockContext) -> list[str]:
    ctx.use("langchain_core.runnables", "RunnableLambda")
    name = ctx.node.label or ctx.var
    return [f"{ctx.var} = RunnableLambda(lambda value: value, name={name!r}).invoke({ctx.source})"]


def _render_vector_store(ctx: BlockContext) -> list[str]:
    s = ctx.settings
    ctx.use("langchain_chroma", "Chroma")
    ctx.use("langchain_openai", "OpenAIEmbeddings")
    store = ctx.aux("store")
    return [
        f"{store} = Chroma(collection_name={s.index!r}, embedding_function=OpenAIEmbeddings())",
        f"{store}.add_texts({ctx.texts()})",
        f"{ctx.var} = {store}.similarity_search({ctx.text()}, k={s.top_k})",
    ]


def _render_router(ctx: BlockContext) -> list[str]:
    ctx.use("langchain_core.runnables", "RunnableBranch")
    ctx.use("langchain_core.runnables", "RunnableLambda")
    return [
        f"{ctx.var} = RunnableBranch(",
        f"{INDENT}(lambda value: bool(value), RunnableLambda(lambda value: value)),",
        f"{INDENT}RunnableLambda(lambda value: None),",
        f").invoke({ctx.source})",
    ]


def _render_email(ctx: BlockContext) -> list[str]:
    s = ctx.settings
    ctx.helpers.add("_send_email")
    return [f"{ctx.var} = _send_email({s.to!r}, {s.subject!r}, {ctx.text()})"]


def _render_slack(ctx: BlockContext) -> list[str]:
    s = ctx.settings
    ctx.use("os")
    ctx.use("slack_sdk", "WebClient")
    client = ctx.aux("client")
    return [
        f"{client} = WebClient(token=os.environ[\"SLACK_BOT_TOKEN\"])",
        f"{ctx.var} = {client}.chat_postMessage(channel={s.channel!r}, text={ctx.text()})",
    ]


def _render_action(ctx: BlockContext) -> list[str]:
    ctx.helpers.add("_deliver")
    return [f"{ctx.var} = _deliver({(ctx.node.label or ctx.node.id)!r}, {ctx.source})"]


ROLE_TEMPLATES: dict[NodeRole, Callable[[BlockContext], list[str]]] = {
    NodeRole.CHAT_INPUT: _render_chat_input,
    NodeRole.WEBHOOK: _render_webhook,
    NodeRole.FILE_UPLOAD: _render_file_upload,
    NodeRole.TRIGGER: _render_trigger,
    NodeRole.LLM: _render_llm,
    NodeRole.TEXT_SPLITTER: _render_text_splitter,
    NodeRole.WEB_SCRAPER: _render_web_scraper,
    NodeRole.IMAGE_GEN: _render_image_gen,
    NodeRole.TRANSCRIBE: _render_transcribe,
    NodeRole.CODE_INTERPRETER: _render_code_interpreter,
    NodeRole.PROCESSING: _render_processing,
    NodeRole.VECTOR_STORE: _render_vector_store,
    NodeRole.ROUTER: _render_router,
    NodeRole.EMAIL: _render_email,
    NodeRole.SLACK: _render_slack,
    NodeRole.ACTION: _render_action,
}


# ======================================================================
# Naming
# 变量命名
# ======================================================================

def _slug(text: str) -> str:
    return re.sub(r"[^0-9a-zA-Z]+", "_", text).strip("_").lower()[:40]


class NameAllocator:
    """
    Hands out unique, valid Python identifiers in request order.
    按申请顺序分配唯一且合法的 Python 标识符。
    """

    def __init__(self, reserved: Iterable[str] = ()):
        self._taken: set[str] = set(reserved)

    def claim(self, base: str) -> str:
        if not base.isidentifier() or base[0].isdigit():
            base = f"node_{base}"
        name, n = base, 2
        while name in self._taken or keyword.iskeyword(name):
            name = f"{base}_{n}"
            n += 1
        self._taken.add(name)
        return name


def variable_base(node: FlowNode, position: int) -> str:
    """Preferred variable name: ``<label slug>_<id slug>``."""
    id_part = _slug(node.id) or f"n{position}"
    label_part = _slug(node.label)
    return f"{label_part}_{id_part}" if label_part else f"node_{id_part}"


# ======================================================================
# Emission
# 脚本生成
# ======================================================================

def _one_line(text: str) -> str:
    """Collapse whitespace and escape control characters for a comment line."""
    # NUL 与孤立代理字符会让生成的源码无法解析，按转义形式输出
    return "".join(ch if ch.isprintable() else repr(ch)[1:-1] for ch in " ".join(text.split()))


def _render_imports(imports: set[tuple[str, str | None]]) -> list[str]:
    plain = sorted(m for m, name in imports if name is None)
    grouped: dict[str, set[str]] = {}
    for module, name in imports:
        if name is not None:
            grouped.setdefault(module, set()).add(name)

    stdlib = [f"import {m}" for m in plain if m in _STDLIB_MODULES]
    stdlib += [f"from {m} import {', '.join(sorted(grouped[m]))}" for m in sorted(grouped) if m in _STDLIB_MODULES]
    third_party = [f"import {m}" for m in plain if m not in _STDLIB_MODULES]
    third_party += [f"from {m} import {', '.join(sorted(grouped[m]))}" for m in sorted(grouped) if m not in _STDLIB_MODULES]

    lines: list[str] = []
    for section in (stdlib, third_party):
        if section:
            if lines:
                lines.append("")
            lines.extend(section)
    return lines


def _resolve_helpers(helpers: set[str]) -> list[str]:
    """Close over helper dependencies; keep the fixed declaration order."""
    needed = set(helpers)
    for name in list(helpers):
        needed.update(_HELPER_DEPENDENCIES[name])
    return [name for name in _HELPER_SOURCES if name in needed]


def compile_script(snapshot: GraphSnapshot) -> str:
    """
    Compile a snapshot into script text. Pure: same snapshot, same bytes.
    将快照编译为脚本文本。纯函数：相同快照产生逐字节相同的输出。
    """
    graph = FlowGraph(snapshot)
    order, leftover = graph.topological_sort()
    sequence = order + leftover
    position = {nid: i for i, nid in enumerate(graph.node_ids)}

    # Primary variables first so auxiliary names can never shadow them.
    # 先为所有节点分配主变量名，辅助变量名之后再分配，避免相互覆盖。
    names = NameAllocator(RESERVED_NAMES)
    variables = {nid: names.claim(variable_base(graph.nodes[nid], position[nid])) for nid in sequence}

    imports: set[tuple[str, str | None]] = set()
    helpers: set[str] = set()
    body: list[str] = []
    emitted: set[str] = set()

    for nid in sequence:
        node = graph.nodes[nid]
        producers = graph.producer_ids(nid)
        available = [p for p in producers if p in emitted]
        if len(available) != len(producers):
            logger.warning(
                "[Compiler] Node %s: dropping reference(s) to %s (cycle, not yet defined)",
                nid, [p for p in producers if p not in emitted],
            )

        if not available:
            source = "inputs"
        elif len(available) == 1:
            source = variables[available[0]]
        else:
            source = "[" + ", ".join(variables[p] for p in available) + "]"

        role = infer_role(node)
        ctx = BlockContext(
            node=node,
            var=variables[nid],
            source=source,
            has_upstream=bool(available),
            settings=resolve_settings(node, role),
            claim=names.claim,
        )
        lines = ROLE_TEMPLATES[role](ctx)
        imports |= ctx.imports
        helpers |= ctx.helpers

        if body:
            body.append("")
        body.append(f"# [{node.kind.value}] {_one_line(node.label) or '(unnamed)'} ({_one_line(node.id)})")
        body.extend(lines)
        emitted.add(nid)

    for name in _resolve_helpers(helpers):
        for module, imported in _HELPER_IMPORTS.get(name, ()):
            imports.add((module, imported))

    sinks = [nid for nid in graph.sink_ids() if nid in emitted]
    if sinks:
        if body:
            body.append("")
        body.append("return {")
        body.extend(f"{INDENT}{nid!r}: {variables[nid]}," for nid in sinks)
        body.append("}")
    else:
        body.append("return {}")

    out: list[str] = [
        '"""',
        "Pipeline script exported by NeuroFlow.",
        "",
        f"Graph: {len(graph.nodes)} nodes, {len(graph.valid_edges())} edges.",
        "Call run_pipeline(inputs) with a mapping of trigger node id -> input value.",
        '"""',
        "",
    ]
    import_lines = _render_imports(imports)
    if import_lines:
        out.extend(import_lines)
        out.append("")
    for name in _resolve_helpers(helpers):
        out.extend(["", _HELPER_SOURCES[name].rstrip("\n"), ""])
    out.extend(["", "def run_pipeline(inputs: dict) -> dict:"])
    out.extend(f"{INDENT}{line}" if line else "" for line in body)
    out.extend(["", "", 'if __name__ == "__main__":', f"{INDENT}print(run_pipeline({{}}))", ""])

    logger.debug("[Compiler] Script compiled: %s", graph.summary())
    return "\n".join(out)


def to_script_text(
    nodes: Iterable[FlowNode | Mapping[str, Any]],
    edges: Iterable[FlowEdge | Mapping[str, Any]],
) -> str:
    """
    Compile the graph into human-readable Python (LangChain) source text.
    将图编译为可读的 Python（LangChain）源代码文本。
    """
    return compile_script(GraphSnapshot.capture(nodes, edges))
