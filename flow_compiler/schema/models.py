"""
Pydantic models describing the designer flow definition.

A flow arrives from the visual editor as a list of nodes and edges. Each node
category carries its own payload shape; all of them are validated here, once,
so translators can rely on typed attributes instead of re-checking nested
dictionaries.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union, Annotated

from pydantic import (
    AfterValidator,
    AliasChoices,
    BeforeValidator,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    PrivateAttr,
    Tag,
    field_validator,
    model_validator,
)

from flow_compiler.expr.templates import check_placeholders


class NodeType(str, Enum):
    trigger = "triggerNode"
    text_message = "whatsappTextNode"
    template_message = "whatsappNode"
    button_message = "buttonMessageNode"
    list_message = "listMessageNode"
    media_message = "mediaMessageNode"
    catalog_message = "catalogMessageNode"
    delay = "delayNode"
    condition_split = "conditionSplitNode"
    condition_branch = "conditionBranchNode"
    save_data = "saveDataNode"
    save_variable = "saveVariableNode"
    start_loop = "startLoopNode"
    end_loop = "endLoopNode"
    api = "apiNode"
    webhook = "webhookNode"
    utils_function = "utilsFunctionNode"
    subflow = "subflowNode"
    internal_alert = "internalAlertNode"


KNOWN_NODE_TYPES = frozenset(member.value for member in NodeType)
UNKNOWN_NODE_TAG = "unknown"

TIME_UNITS = frozenset(
    {"second", "seconds", "minute", "minutes", "hour", "hours", "day", "days", "week", "weeks"}
)


def _check_time_unit(value: str) -> str:
    normalised = value.strip().lower()
    if normalised not in TIME_UNITS:
        raise ValueError(f"unsupported time unit '{value}'")
    return normalised


TimeUnit = Annotated[str, AfterValidator(_check_time_unit)]


def _blank_to_none(value: Any) -> Any:
    return None if isinstance(value, str) and not value.strip() else value


WaitAmount = Annotated[Optional[float], BeforeValidator(_blank_to_none)]


class PayloadModel(BaseModel):
    # Designer payloads carry editor-only keys we forward untouched.
    model_config = ConfigDict(extra="allow", populate_by_name=True)


# -----------------------------
# Shared payload pieces
# -----------------------------
class FormPayload(PayloadModel):
    is_response_wait: bool = False
    response_wait: WaitAmount = None
    response_wait_unit: TimeUnit = "seconds"
    is_check_format: bool = False
    format_unit: Optional[str] = None

    @model_validator(mode="after")
    def _format_unit_when_checked(self) -> "FormPayload":
        if self.is_check_format and not self.format_unit:
            raise ValueError("form_payload.format_unit is required when is_check_format is set")
        return self


class MessageText(PayloadModel):
    text: str = ""


class TemplateButton(PayloadModel):
    id: str = Field(min_length=1)
    title: str = ""


class TemplateFormPayload(FormPayload):
    buttons: List[TemplateButton] = Field(default_factory=list)


class TemplateComponent(PayloadModel):
    type: str
    parameters: Optional[List[Any]] = None


class TemplateMetaPayload(PayloadModel):
    components: List[TemplateComponent] = Field(default_factory=list)


class ButtonReply(PayloadModel):
    id: str = Field(min_length=1)
    title: str = ""


class ReplyButton(PayloadModel):
    reply: ButtonReply


class ButtonAction(PayloadModel):
    buttons: List[ReplyButton] = Field(default_factory=list)


class ButtonMetaPayload(PayloadModel):
    body: MessageText = Field(default_factory=MessageText)
    header: Optional[MessageText] = None
    footer: Optional[MessageText] = None
    action: ButtonAction = Field(default_factory=ButtonAction)


class ListRow(PayloadModel):
    id: str = Field(min_length=1)
    title: str = ""


class ListSection(PayloadModel):
    title: str = ""
    rows: List[ListRow] = Field(default_factory=list)


class ListAction(PayloadModel):
    sections: List[ListSection] = Field(default_factory=list)


class ListMetaPayload(PayloadModel):
    body: MessageText = Field(default_factory=MessageText)
    header: Optional[MessageText] = None
    footer: Optional[MessageText] = None
    action: ListAction = Field(default_factory=ListAction)


# -----------------------------
# Per-category node data
# -----------------------------
class NodeData(PayloadModel):
    title: str = ""

    @model_validator(mode="after")
    def _placeholders_parse(self) -> "NodeData":
        check_placeholders(self.model_dump(mode="json"))
        return self


class TextMessageData(NodeData):
    form_payload: FormPayload = Field(default_factory=FormPayload)
    meta_payload: Dict[str, Any] = Field(default_factory=dict)


class TemplateMessageData(NodeData):
    form_payload: TemplateFormPayload = Field(default_factory=TemplateFormPayload)
    meta_payload: TemplateMetaPayload = Field(default_factory=TemplateMetaPayload)


class ButtonMessageData(NodeData):
    form_payload: FormPayload = Field(default_factory=FormPayload)
    meta_payload: ButtonMetaPayload = Field(default_factory=ButtonMetaPayload)

    @model_validator(mode="after")
    def _requires_buttons(self) -> "ButtonMessageData":
        if not self.meta_payload.action.buttons:
            raise ValueError("button message requires at least one button")
        return self


class ListMessageData(NodeData):
    form_payload: FormPayload = Field(default_factory=FormPayload)
    meta_payload: ListMetaPayload = Field(default_factory=ListMetaPayload)

    @model_validator(mode="after")
    def _requires_rows(self) -> "ListMessageData":
        if not any(section.rows for section in self.meta_payload.action.sections):
            raise ValueError("list message requires at least one row")
        return self


class MediaMessageData(NodeData):
    form_payload: FormPayload = Field(default_factory=FormPayload)
    meta_payload: Dict[str, Any] = Field(default_factory=dict)


class CatalogMessageData(NodeData):
    form_payload: FormPayload = Field(default_factory=FormPayload)
    meta_payload: Dict[str, Any] = Field(default_factory=dict)


class InternalAlertData(NodeData):
    form_payload: FormPayload = Field(default_factory=FormPayload)
    meta_payload: TemplateMetaPayload = Field(default_factory=TemplateMetaPayload)


class DelayData(NodeData):
    delay: float = Field(default=0, ge=0)
    unit: TimeUnit = "seconds"
    is_delayed_until: bool = False
    is_delayed_until_dynamic: bool = False
    delayed_until: Optional[str] = None

    @model_validator(mode="after")
    def _until_needs_timestamp(self) -> "DelayData":
        if (self.is_delayed_until or self.is_delayed_until_dynamic) and not self.delayed_until:
            raise ValueError("delayed_until is required for delay-until nodes")
        return self


class ConditionSplitData(NodeData):
    conditions: List[Dict[str, Any]] = Field(default_factory=list)
    filterGroupCondition: str = "and"


class BranchPath(PayloadModel):
    label: str = Field(min_length=1)
    conditions: List[Dict[str, Any]] = Field(default_factory=list)


class ConditionBranchData(NodeData):
    paths: List[BranchPath] = Field(default_factory=list)

    @field_validator("paths")
    @classmethod
    def _unique_labels(cls, paths: List[BranchPath]) -> List[BranchPath]:
        seen: set[str] = set()
        for path in paths:
            port = "_".join(path.label.split()).upper()
            if port in seen:
                raise ValueError(f"duplicate branch label '{path.label}'")
            seen.add(port)
        return paths


class DataColumn(PayloadModel):
    name: str = Field(min_length=1)
    value: Any = None


class SaveDataData(NodeData):
    table: str = Field(min_length=1)
    columns: List[DataColumn] = Field(default_factory=list)


class VariableEntry(PayloadModel):
    key: str = Field(min_length=1)
    value: Any = None


class SaveVariableData(NodeData):
    variables: List[VariableEntry] = Field(default_factory=list)


class StartLoopData(NodeData):
    loop_list: Union[int, str, List[Any]] = Field(default_factory=list)
    limit: Optional[int] = Field(default=None, ge=1)


class ApiData(NodeData):
    api_type: str = Field(min_length=1)
    api_event: str = Field(min_length=1)


class WebhookData(NodeData):
    type: str = "default"
    webhook_id: Optional[str] = None
    response_wait: WaitAmount = None
    response_wait_unit: TimeUnit = "seconds"

    @model_validator(mode="after")
    def _custom_needs_id(self) -> "WebhookData":
        if self.type == "custom" and not self.webhook_id:
            raise ValueError("custom webhooks require webhook_id")
        return self


class UtilsFunctionData(NodeData):
    function: str = Field(min_length=1)
    source: Any = None
    target: Any = None


class SubflowData(NodeData):
    subflow: str = Field(min_length=1)


# -----------------------------
# Nodes
# -----------------------------
class NodeBase(BaseModel):
    # position, width, selected, ... are editor state.
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(min_length=1)
    type: str
    data: NodeData = Field(default_factory=NodeData)

    @property
    def title(self) -> str:
        return self.data.title


class TriggerNode(NodeBase):
    type: Literal["triggerNode"] = "triggerNode"


class TextMessageNode(NodeBase):
    type: Literal["whatsappTextNode"] = "whatsappTextNode"
    data: TextMessageData = Field(default_factory=TextMessageData)


class TemplateMessageNode(NodeBase):
    type: Literal["whatsappNode"] = "whatsappNode"
    data: TemplateMessageData = Field(default_factory=TemplateMessageData)


class ButtonMessageNode(NodeBase):
    type: Literal["buttonMessageNode"] = "buttonMessageNode"
    data: ButtonMessageData


class ListMessageNode(NodeBase):
    type: Literal["listMessageNode"] = "listMessageNode"
    data: ListMessageData


class MediaMessageNode(NodeBase):
    type: Literal["mediaMessageNode"] = "mediaMessageNode"
    data: MediaMessageData = Field(default_factory=MediaMessageData)


class CatalogMessageNode(NodeBase):
    type: Literal["catalogMessageNode"] = "catalogMessageNode"
    data: CatalogMessageData = Field(default_factory=CatalogMessageData)


class InternalAlertNode(NodeBase):
    type: Literal["internalAlertNode"] = "internalAlertNode"
    data: InternalAlertData = Field(default_factory=InternalAlertData)


class DelayNode(NodeBase):
    type: Literal["delayNode"] = "delayNode"
    data: DelayData = Field(default_factory=DelayData)


class ConditionSplitNode(NodeBase):
    type: Literal["conditionSplitNode"] = "conditionSplitNode"
    data: ConditionSplitData = Field(default_factory=ConditionSplitData)


class ConditionBranchNode(NodeBase):
    type: Literal["conditionBranchNode"] = "conditionBranchNode"
    data: ConditionBranchData = Field(default_factory=ConditionBranchData)


class SaveDataNode(NodeBase):
    type: Literal["saveDataNode"] = "saveDataNode"
    data: SaveDataData


class SaveVariableNode(NodeBase):
    type: Literal["saveVariableNode"] = "saveVariableNode"
    data: SaveVariableData = Field(default_factory=SaveVariableData)


class StartLoopNode(NodeBase):
    type: Literal["startLoopNode"] = "startLoopNode"
    data: StartLoopData = Field(default_factory=StartLoopData)


class EndLoopNode(NodeBase):
    type: Literal["endLoopNode"] = "endLoopNode"


class ApiNode(NodeBase):
    type: Literal["apiNode"] = "apiNode"
    data: ApiData


class WebhookNode(NodeBase):
    type: Literal["webhookNode"] = "webhookNode"
    data: WebhookData = Field(default_factory=WebhookData)


class UtilsFunctionNode(NodeBase):
    type: Literal["utilsFunctionNode"] = "utilsFunctionNode"
    data: UtilsFunctionData


class SubflowNode(NodeBase):
    type: Literal["subflowNode"] = "subflowNode"
    data: SubflowData


class UnknownNode(NodeBase):
    """Any category the compiler has no translation rule for."""


def _node_tag(value: Any) -> str:
    node_type = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    if isinstance(node_type, Enum):
        node_type = node_type.value
    return node_type if node_type in KNOWN_NODE_TYPES else UNKNOWN_NODE_TAG


Node = Annotated[
    Union[
        Annotated[TriggerNode, Tag("triggerNode")],
        Annotated[TextMessageNode, Tag("whatsappTextNode")],
        Annotated[TemplateMessageNode, Tag("whatsappNode")],
        Annotated[ButtonMessageNode, Tag("buttonMessageNode")],
        Annotated[ListMessageNode, Tag("listMessageNode")],
        Annotated[MediaMessageNode, Tag("mediaMessageNode")],
        Annotated[CatalogMessageNode, Tag("catalogMessageNode")],
        Annotated[InternalAlertNode, Tag("internalAlertNode")],
        Annotated[DelayNode, Tag("delayNode")],
        Annotated[ConditionSplitNode, Tag("conditionSplitNode")],
        Annotated[ConditionBranchNode, Tag("conditionBranchNode")],
        Annotated[SaveDataNode, Tag("saveDataNode")],
        Annotated[SaveVariableNode, Tag("saveVariableNode")],
        Annotated[StartLoopNode, Tag("startLoopNode")],
        Annotated[EndLoopNode, Tag("endLoopNode")],
        Annotated[ApiNode, Tag("apiNode")],
        Annotated[WebhookNode, Tag("webhookNode")],
        Annotated[UtilsFunctionNode, Tag("utilsFunctionNode")],
        Annotated[SubflowNode, Tag("subflowNode")],
        Annotated[UnknownNode, Tag(UNKNOWN_NODE_TAG)],
    ],
    Discriminator(_node_tag),
]


# -----------------------------
# Edges and the flow itself
# -----------------------------
class Edge(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Optional[str] = None
    source: str = Field(min_length=1)
    target: str = Field(min_length=1)
    source_handle: Optional[str] = Field(default=None, alias="sourceHandle")


class FlowDefinition(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    flow_id: str = Field(default="", validation_alias=AliasChoices("flowId", "flow_id", "_id", "id"))
    title: str = Field(min_length=1)
    organisation_id: str = Field(
        default="", validation_alias=AliasChoices("organisationId", "organisation_id", "org_id")
    )
    branch_id: str = Field(default="", validation_alias=AliasChoices("branchId", "branch_id"))
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)

    _nodes_by_id: Dict[str, NodeBase] = PrivateAttr(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _unwrap_stored_record(cls, data: Any) -> Any:
        # Stored flow records keep the graph under `fe_flow`.
        if isinstance(data, dict) and isinstance(data.get("fe_flow"), dict):
            merged = {k: v for k, v in data.items() if k != "fe_flow"}
            merged.setdefault("nodes", data["fe_flow"].get("nodes", []))
            merged.setdefault("edges", data["fe_flow"].get("edges", []))
            return merged
        return data

    @field_validator("flow_id", "organisation_id", "branch_id", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> Any:
        return "" if value is None else str(value)

    @model_validator(mode="after")
    def _check_structure(self) -> "FlowDefinition":
        seen: set[str] = set()
        for node in self.nodes:
            if node.id in seen:
                raise ValueError(f"duplicate node id '{node.id}'")
            seen.add(node.id)

        triggers = [node.id for node in self.nodes if node.type == NodeType.trigger.value]
        if len(triggers) != 1:
            raise ValueError(f"flow must contain exactly one trigger node, found {len(triggers)}")

        for edge in self.edges:
            for endpoint in (edge.source, edge.target):
                if endpoint not in seen:
                    raise ValueError(f"edge '{edge.id or edge.source}' references unknown node '{endpoint}'")
        return self

    def model_post_init(self, __context: Any) -> None:
        self._nodes_by_id = {node.id: node for node in self.nodes}

    def node(self, node_id: str) -> Optional[NodeBase]:
        return self._nodes_by_id.get(node_id)

    @property
    def trigger(self) -> TriggerNode:
        return next(node for node in self.nodes if isinstance(node, TriggerNode))
