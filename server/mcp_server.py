# docforge MCP Server - JSON-RPC 2.0 implementation
# Serves the search_content, get_content and list_resources tools over a
# loaded content snapshot.

import sys, json, logging
from typing import Dict, Any, List, Optional, TextIO

from indexer.source_schema import ContentItem, EngineNotReadyError, InvalidArgumentError
from .query_engine import DEFAULT_LIMIT, GetResult, Listing, QueryEngine, SearchResult

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"

# JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

TOOLS = [
    {
        "name": "search_content",
        "description": "Search through documentation content",
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Search query"
                },
                "limit": {
                    "type": "integer",
                    "description": "Maximum number of results",
                    "default": DEFAULT_LIMIT,
                    "minimum": 1
                },
                "source": {
                    "type": "string",
                    "description": "Filter by source name"
                },
                "type": {
                    "type": "string",
                    "description": "Filter by content type"
                }
            },
            "required": ["query"]
        }
    },
    {
        "name": "get_content",
        "description": "Retrieve specific content by ID or path",
        "inputSchema": {
            "type": "object",
            "properties": {
                "id": {
                    "type": "string",
                    "description": "Content ID"
                },
                "path": {
                    "type": "string",
                    "description": "Content path"
                },
                "includeRelated": {
                    "type": "boolean",
                    "description": "Include related content",
                    "default": False
                }
            },
            "oneOf": [
                {"required": ["id"]},
                {"required": ["path"]}
            ]
        }
    },
    {
        "name": "list_resources",
        "description": "Browse available documentation resources",
        "inputSchema": {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Path to browse (default: root)",
                    "default": ""
                },
                "type": {
                    "type": "string",
                    "description": "Filter by resource type"
                },
                "source": {
                    "type": "string",
                    "description": "Filter by source name"
                }
            }
        }
    }
]

TOOL_NAMES = [tool["name"] for tool in TOOLS]

class JSONRPCError(Exception):
    """An error carrying a JSON-RPC error code."""

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}

class UnknownToolError(JSONRPCError):
    def __init__(self, name: str):
        super().__init__(METHOD_NOT_FOUND, f"Unknown tool: {name}")
        self.name = name

def text_result(text: str) -> Dict[str, Any]:
    return {"content": [{"type": "text", "text": text}]}

def render_search(query: str, results: List[SearchResult]) -> str:
    if not results:
        return f'No results found for "{query}"'
    blocks = []
    for index, result in enumerate(results, start=1):
        lines = [
            f"{index}. **{result.title}** (Match: {round(result.score * 100)}%)",
            f"   Source: {result.source}",
            f"   Type: {result.type}",
            f"   Path: {result.path}"
        ]
        if result.description:
            lines.append(f"   Description: {result.description}")
        if result.url:
            lines.append(f"   URL: {result.url}")
        lines.append("")
        lines.append(f"   Preview: {result.snippet}")
        blocks.append("\n".join(lines))
    return f'Found {len(results)} results for "{query}":\n\n' + "\n\n".join(blocks)

def render_item(result: GetResult) -> str:
    if not result.found:
        return result.message
    item = result.item
    lines = [
        f"# {item.title}",
        "",
        f"**Source:** {item.source}",
        f"**Type:** {item.type}",
        f"**Path:** {item.path}"
    ]
    if item.url:
        lines.append(f"**URL:** {item.url}")
    if item.metadata.last_modified:
        lines.append(f"**Last Modified:** {item.metadata.last_modified.date().isoformat()}")
    lines += ["", "---", "", item.content]

    if result.related:
        lines += ["", "## Related Content", ""]
        for index, other in enumerate(result.related, start=1):
            line = f"{index}. [{other.title}]({other.path})"
            if other.metadata.description:
                line += f" - {other.metadata.description}"
            lines.append(line)
    return "\n".join(lines)

def _render_listing_item(item: ContentItem) -> List[str]:
    lines = [
        f"- **{item.title}** ({item.type})",
        f"  - Path: {item.path}",
        f"  - Source: {item.source}"
    ]
    if item.metadata.description:
        lines.append(f"  - Description: {item.metadata.description}")
    if item.url:
        lines.append(f"  - URL: {item.url}")
    lines.append("")
    return lines

def render_listing(listing: Listing) -> str:
    lines = ["# Documentation Resources", ""]
    if listing.path:
        lines += [f"Browsing path: {listing.path}", ""]
    lines.append(f"**Total Items:** {listing.total}")
    lines.append(f"**Sections:** {listing.section_count}")
    if listing.sources:
        lines.append(f"**Sources:** {', '.join(listing.sources)}")
    lines += ["", "---", ""]
    for section, items in listing.sections.items():
        lines += [f"## {section}", ""]
        for item in items:
            lines += _render_listing_item(item)
    return "\n".join(lines)

def _limit_argument(value: Any) -> Any:
    # JSON clients may send 5.0 for 5
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value

class MCPServer:
    def __init__(self, engine: QueryEngine, name: str = "docforge", version: str = "0.1.0"):
        self.engine = engine
        self.capabilities = {
            "tools": {
                "listChanged": False
            }
        }
        self.server_info = {
            "name": name,
            "version": version
        }
        self.session_initialized = False

    async def handle_initialize(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Handle MCP initialize request"""
        client_info = params.get("clientInfo", {})
        logger.info(f"Initializing MCP session with client: {client_info.get('name', 'unknown')}")

        return {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": self.capabilities,
            "serverInfo": self.server_info
        }

    async def handle_initialized(self, params: Dict[str, Any]) -> None:
        """Handle MCP initialized notification"""
        self.session_initialized = True
        logger.info("MCP session initialized successfully")

    async def handle_tools_list(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """List available MCP tools"""
        return {"tools": TOOLS}

    async def handle_tools_call(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Execute MCP tool calls"""
        name = params.get("name")
        arguments = params.get("arguments") or {}
        return await self.call_tool(name, arguments)

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Run one tool by name.

        Raises:
            UnknownToolError: if no tool has that name
            InvalidArgumentError: if the arguments are invalid
        """
        if not isinstance(arguments, dict):
            raise InvalidArgumentError("Tool arguments must be an object")

        if name == "search_content":
            return await self._tool_search_content(arguments)
        elif name == "get_content":
            return await self._tool_get_content(arguments)
        elif name == "list_resources":
            return await self._tool_list_resources(arguments)
        else:
            raise UnknownToolError(name)

    async def _tool_search_content(self, args: Dict[str, Any]) -> Dict[str, Any]:
        query = args.get("query")
        results = self.engine.search(
            query,
            limit=_limit_argument(args.get("limit", DEFAULT_LIMIT)),
            source=args.get("source"),
            type=args.get("type")
        )
        return text_result(render_search(query.strip(), results))

    async def _tool_get_content(self, args: Dict[str, Any]) -> Dict[str, Any]:
        include_related = args.get("includeRelated", False)
        if not isinstance(include_related, bool):
            raise InvalidArgumentError("includeRelated must be a boolean")
        result = self.engine.get(
            id=args.get("id"),
            path=args.get("path"),
            include_related=include_related
        )
        return text_result(render_item(result))

    async def _tool_list_resources(self, args: Dict[str, Any]) -> Dict[str, Any]:
        listing = self.engine.list(
            path=args.get("path"),
            type=args.get("type"),
            source=args.get("source")
        )
        return text_result(render_listing(listing))

    async def handle_request(self, request_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Main request handler following JSON-RPC 2.0"""
        request_id = request_data.get("id") if isinstance(request_data, dict) else None
        try:
            # Validate JSON-RPC structure
            if not isinstance(request_data, dict) or request_data.get("jsonrpc") != "2.0":
                raise JSONRPCError(INVALID_REQUEST, "Invalid JSON-RPC version")

            method = request_data.get("method")
            params = request_data.get("params") or {}

            if not method:
                raise JSONRPCError(INVALID_REQUEST, "Missing method")
            if not isinstance(params, dict):
                raise JSONRPCError(INVALID_PARAMS, "Params must be an object")

            if method == "initialize":
                result = await self.handle_initialize(params)
            elif method in ("initialized", "notifications/initialized"):
                await self.handle_initialized(params)
                return None  # Notification, no response
            elif method == "ping":
                result = {}
            elif method == "tools/list":
                result = await self.handle_tools_list(params)
            elif method == "tools/call":
                result = await self.handle_tools_call(params)
            else:
                raise JSONRPCError(METHOD_NOT_FOUND, f"Unknown method: {method}")

            if "id" not in request_data:
                return None

            return {
                "jsonrpc": "2.0",
                "id": request_id,
                "result": result
            }

        except JSONRPCError as e:
            logger.warning(f"Request failed: {e.message}")
            error = e.to_dict()
        except InvalidArgumentError as e:
            logger.warning(f"Invalid params: {e}")
            error = {"code": INVALID_PARAMS, "message": str(e)}
        except EngineNotReadyError as e:
            logger.error(f"Engine not ready: {e}")
            error = {"code": INTERNAL_ERROR, "message": str(e)}
        except Exception as e:
            logger.exception(f"Error handling request: {e}")
            error = {"code": INTERNAL_ERROR, "message": f"Tool execution failed: {e}"}

        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "error": error
        }

    async def handle_message(self, line: str) -> Optional[Dict[str, Any]]:
        """Decode one JSON-RPC message line and handle it."""
        try:
            request_data = json.loads(line)
        except json.JSONDecodeError as e:
            return {
                "jsonrpc": "2.0",
                "id": None,
                "error": {
                    "code": PARSE_ERROR,
                    "message": f"Parse error: {e}"
                }
            }
        return await self.handle_request(request_data)

    async def serve_stdio(self, stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None):
        """JSON-RPC over stdio, one message per line, until EOF.

        Nothing but protocol messages is written to stdout.
        """
        stdin = stdin or sys.stdin
        stdout = stdout or sys.stdout
        logger.info(f"Starting MCP server in stdio mode ({self.engine.content.total_items} items)")

        while True:
            line = stdin.readline()
            if not line:
                break
            if not line.strip():
                continue

            response = await self.handle_message(line.strip())
            if response:  # Don't send response for notifications
                stdout.write(json.dumps(response) + "\n")
                stdout.flush()

        logger.info("stdin closed, stopping MCP server")
