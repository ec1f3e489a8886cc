# isw_sso/core/link_hydration.py
"""
Hidratação de links de ação do Hub (`a[isw_action_link]`).

Cada link marcado com `isw_action_link="<chave>"` recebe, no `href`, o token
do destino correspondente e o timestamp atual:

    /go?x=1  ->  /go?x=1&token=<token>&ts=<epoch_segundos>

O documento é uma árvore `lxml.html`. O estado que no navegador ficaria em
variáveis globais (hidratado ou não, listeners instalados, mutações pendentes,
prazo do debounce) vive em um `HydrationContext` explícito, criado por
`HydrationContext.init` e descartado por `teardown`.

Ciclo de vida:

1. `init` instala o bloqueador de cliques: até a primeira hidratação, um
   clique em link marcado é cancelado.
2. `start` (o "DOM pronto") faz a primeira passada, remove o bloqueador e
   instala os listeners de `mouseover`, `focusin` e `click`, que revalidam o
   link imediatamente antes do uso.
3. Nós inseridos depois são entregues a `observe_mutations` e processados em
   lote por `flush_mutations`, com debounce de 100 ms.
4. Voltar a aba para o primeiro plano reidrata tudo.

Todos os caminhos convergem para `rewrite_link`, que é idempotente.
"""

# ========================
# --- Importações ---
# ========================
import itertools
import json
import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import lxml.html
from lxml.html import HtmlElement
from pydantic import BaseModel, Field

# --- Módulos da Aplicação ---
from isw_sso.core.config import settings

# ========================
# --- Configuração do Logger ---
# ========================
logger = logging.getLogger(__name__)

# ========================
# --- Constantes ---
# ========================
VERSION = "2.0"
LINK_ATTRIBUTE = "isw_action_link"
APPLIED_TOKEN_ATTRIBUTE = "data-isw-token"
APPLIED_MARKER_ATTRIBUTE = "data-isw-applied"
MARKED_ANCHORS_XPATH = f".//a[@{LINK_ATTRIBUTE}]"

EVENT_CLICK = "click"
EVENT_MOUSEOVER = "mouseover"
EVENT_FOCUSIN = "focusin"
EVENT_VISIBILITY = "visibilitychange"


def _now() -> float:
    return time.time()


# ========================
# --- Modelos ---
# ========================
class HydrationConfig(BaseModel):
    keys: List[str] = Field(default_factory=lambda: list(settings.ISW_LINK_KEYS))
    debounce_ms: int = 100
    click_defer_ms: int = 1


class ClickDecision(BaseModel):
    """
    O que o navegador deve fazer com um clique em link marcado.

    `blocked` indica clique cancelado antes da primeira hidratação. Fora
    isso, `navigate` é o `href` já revalidado e `deferred_ms` o atraso
    mínimo antes da navegação.
    """
    prevent_default: bool = False
    blocked: bool = False
    navigate: Optional[str] = None
    new_tab: bool = False
    deferred_ms: int = 0


# ========================
# --- Reescrita de URL ---
# ========================
def apply_token(href: str, token: str, ts: int, ts_only: bool = False) -> str:
    """
    Define `token` e `ts` na query de `href`, preservando os demais parâmetros.

    Raises:
        ValueError: Se `href` não puder ser interpretado como URL.
    """
    parts = urlsplit(href)
    params = parse_qsl(parts.query, keep_blank_values=True)
    updates = {"ts": str(ts)} if ts_only else {"token": token, "ts": str(ts)}

    rebuilt = []
    for name, value in params:
        if name in updates:
            if updates[name] is not None:
                rebuilt.append((name, updates[name]))
                updates[name] = None
            continue
        rebuilt.append((name, value))
    rebuilt.extend((name, value) for name, value in updates.items() if value is not None)

    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(rebuilt), parts.fragment))


def _query_value(href: str, name: str) -> Optional[str]:
    return dict(parse_qsl(urlsplit(href).query, keep_blank_values=True)).get(name)


def closest_marked_anchor(target: Optional[HtmlElement]) -> Optional[HtmlElement]:
    """O próprio `target` ou o ancestral mais próximo que seja `a[isw_action_link]`."""
    if target is None:
        return None
    for node in itertools.chain([target], target.iterancestors()):
        if node.tag == "a" and node.get(LINK_ATTRIBUTE) is not None:
            return node
    return None


# ========================
# --- Contexto de Hidratação ---
# ========================
class HydrationContext:
    """Estado de hidratação de um documento."""

    def __init__(
        self,
        document: HtmlElement,
        tokens: Mapping[str, str],
        config: Optional[HydrationConfig] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.document = document
        self.tokens: Dict[str, str] = dict(tokens or {})
        self.config = config or HydrationConfig()
        self._clock = clock or _now
        self.hydrated = False
        self.active = False
        self.listeners: Dict[str, Callable[..., Any]] = {}
        self.pending_nodes: List[HtmlElement] = []
        self.debounce_deadline: Optional[float] = None

    # --- Ciclo de vida ---
    @classmethod
    def init(
        cls,
        document: HtmlElement,
        tokens: Mapping[str, str],
        config: Optional[HydrationConfig] = None,
        clock: Optional[Callable[[], float]] = None,
        ready: bool = True,
    ) -> "HydrationContext":
        """
        Cria o contexto e instala o bloqueador de cliques.

        Args:
            ready: Se True (documento já carregado), faz a primeira
                   hidratação imediatamente; senão aguarda `start()`.
        """
        context = cls(document, tokens, config, clock)
        context.active = True
        context.listeners[EVENT_CLICK] = context._block_click
        context.listeners[EVENT_VISIBILITY] = context.on_visibility_change
        if ready:
            context.start()
        return context

    def start(self) -> int:
        """Primeira hidratação: troca o bloqueador pelos listeners de revalidação."""
        updated = self.hydrate_all()
        self.hydrated = True
        self.listeners.pop(EVENT_CLICK, None)
        self.listeners[EVENT_MOUSEOVER] = self._revalidate
        self.listeners[EVENT_FOCUSIN] = self._revalidate
        self.listeners[EVENT_CLICK] = self._handle_click
        logger.info(f"[ISW SSO] Inicializado - {updated} links hidratados")
        return updated

    def teardown(self) -> None:
        self.listeners.clear()
        self.pending_nodes.clear()
        self.debounce_deadline = None
        self.active = False

    # --- Reescrita ---
    def _token_for(self, anchor: HtmlElement) -> Optional[str]:
        key = anchor.get(LINK_ATTRIBUTE)
        if key not in self.config.keys:
            return None
        return self.tokens.get(key) or None

    def rewrite_link(self, anchor: HtmlElement, token: Optional[str]) -> bool:
        """
        Garante que o `href` do link carregue `token` e o `ts` atual.

        Se o token aplicado anteriormente for o mesmo, apenas o `ts` é
        atualizado, e só quando mudou. URLs inválidas deixam o link intacto.

        Returns:
            True se o `href` foi alterado.
        """
        if anchor is None or not token:
            return False
        href = anchor.get("href")
        if not href:
            return False

        ts = int(self._clock())
        try:
            if anchor.get(APPLIED_TOKEN_ATTRIBUTE) == token:
                if _query_value(href, "ts") == str(ts):
                    return False
                anchor.set("href", apply_token(href, token, ts, ts_only=True))
                return True

            new_href = apply_token(href, token, ts)
        except ValueError as exc:
            logger.debug(f"Link ignorado, href inválido ({exc.__class__.__name__}): {href[:80]}")
            return False

        if new_href == href:
            return False
        anchor.set("href", new_href)
        anchor.set(APPLIED_TOKEN_ATTRIBUTE, token)
        anchor.set(APPLIED_MARKER_ATTRIBUTE, "1")
        return True

    def hydrate_all(self) -> int:
        """Reescreve todos os links marcados cujas chaves possuem token. Devolve quantos mudaram."""
        updated = 0
        for key in self.config.keys:
            token = self.tokens.get(key)
            if not token:
                continue
            for anchor in self.document.xpath(f".//a[@{LINK_ATTRIBUTE}=$key]", key=key):
                if self.rewrite_link(anchor, token):
                    updated += 1
        return updated

    def hydrate_element(self, element: Optional[HtmlElement]) -> int:
        """Hidrata um link marcado ou os links marcados dentro de um contêiner."""
        if element is None or not isinstance(element.tag, str):
            return 0
        anchors = element.xpath(MARKED_ANCHORS_XPATH)
        if element.tag == "a" and element.get(LINK_ATTRIBUTE) is not None:
            anchors.insert(0, element)
        return sum(1 for anchor in anchors if self.rewrite_link(anchor, self._token_for(anchor)))

    # --- Eventos ---
    def dispatch(
        self,
        event_type: str,
        target: Optional[HtmlElement] = None,
        *,
        ctrl_key: bool = False,
        meta_key: bool = False,
        visibility_state: Optional[str] = None,
    ) -> Any:
        """
        Entrega um evento ao listener instalado para ele.

        Returns:
            `ClickDecision` (ou None) para `click`, bool para `mouseover` e
            `focusin`, contagem para `visibilitychange`; None se não houver
            listener para o evento.
        """
        handler = self.listeners.get(event_type)
        if handler is None:
            return None
        if event_type == EVENT_VISIBILITY:
            return handler(visibility_state)
        if event_type == EVENT_CLICK:
            return handler(target, ctrl_key=ctrl_key, meta_key=meta_key)
        return handler(target)

    def _block_click(self, target: Optional[HtmlElement], **_modifiers) -> Optional[ClickDecision]:
        if self.hydrated or closest_marked_anchor(target) is None:
            return None
        logger.debug("Clique em link ISW bloqueado antes da primeira hidratação.")
        return ClickDecision(prevent_default=True, blocked=True)

    def _revalidate(self, target: Optional[HtmlElement]) -> bool:
        anchor = closest_marked_anchor(target)
        if anchor is None:
            return False
        return self.rewrite_link(anchor, self._token_for(anchor))

    def _handle_click(
        self,
        target: Optional[HtmlElement],
        ctrl_key: bool = False,
        meta_key: bool = False,
    ) -> Optional[ClickDecision]:
        anchor = closest_marked_anchor(target)
        if anchor is None:
            return None
        token = self._token_for(anchor)
        if not token:
            return None

        self.rewrite_link(anchor, token)
        return ClickDecision(
            prevent_default=True,
            navigate=anchor.get("href"),
            new_tab=ctrl_key or meta_key or anchor.get("target") == "_blank",
            deferred_ms=self.config.click_defer_ms,
        )

    def on_visibility_change(self, visibility_state: Optional[str]) -> int:
        if visibility_state != "visible":
            return 0
        return self.hydrate_all()

    # --- Mutações ---
    def observe_mutations(self, added_nodes: Iterable[HtmlElement], now: Optional[float] = None) -> None:
        """Enfileira nós inseridos; cada chamada reinicia o prazo do debounce."""
        if not self.active:
            return
        now = self._clock() if now is None else now
        self.pending_nodes.extend(node for node in added_nodes if node is not None)
        self.debounce_deadline = now + self.config.debounce_ms / 1000.0

    def flush_mutations(self, now: Optional[float] = None) -> int:
        """
        Processa os nós pendentes se o prazo do debounce já passou.

        Returns:
            Quantidade de links reescritos (0 se ainda dentro do prazo).
        """
        if self.debounce_deadline is None:
            return 0
        now = self._clock() if now is None else now
        if now < self.debounce_deadline:
            return 0

        nodes, self.pending_nodes = self.pending_nodes, []
        self.debounce_deadline = None
        return sum(self.hydrate_element(node) for node in nodes)

    # --- API Pública ---
    def public_api(self) -> Dict[str, Any]:
        return {"rehydrate": self.hydrate_all, "tokens": self.tokens, "version": VERSION}


# ========================
# --- Utilitários para HTML Renderizado no Servidor ---
# ========================
def _looks_like_document(html: str) -> bool:
    head = html.lstrip()[:256].lower()
    return head.startswith("<!doctype") or head.startswith("<html")


def hydrate_html(
    html: str,
    tokens: Mapping[str, str],
    config: Optional[HydrationConfig] = None,
    clock: Optional[Callable[[], float]] = None,
) -> str:
    """Hidrata uma página (ou fragmento) HTML inteira e devolve o HTML resultante."""
    if not html or not html.strip():
        return html

    if _looks_like_document(html):
        root = lxml.html.document_fromstring(html)
        HydrationContext.init(root, tokens, config, clock).teardown()
        doctype = root.getroottree().docinfo.doctype or None
        return lxml.html.tostring(root, encoding="unicode", doctype=doctype)

    container = lxml.html.fragment_fromstring(html, create_parent="div")
    HydrationContext.init(container, tokens, config, clock).teardown()
    return (container.text or "") + "".join(
        lxml.html.tostring(child, encoding="unicode") for child in container
    )


def render_tokens_bootstrap(tokens: Mapping[str, str]) -> str:
    """Corpo do `<script>` que publica os tokens como `window.ISW_TOKENS`."""
    # "</" fecharia a tag <script> no meio do JSON
    payload = json.dumps(dict(tokens), ensure_ascii=False, sort_keys=True).replace("</", "<\\/")
    return f"window.ISW_TOKENS = {payload};"
