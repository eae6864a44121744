from fastapi import FastAPI, Body, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from typing import Any, Dict, List, Optional
import json, logging

import uvicorn

from indexer.source_schema import EngineNotReadyError, InvalidArgumentError
from .mcp_server import MCPServer, TOOLS, TOOL_NAMES, PARSE_ERROR, UnknownToolError
from .query_engine import QueryEngine

logger = logging.getLogger(__name__)

def create_app(engine: QueryEngine, name: str = "docforge",
               cors_origins: Optional[List[str]] = None) -> FastAPI:
    """Build the HTTP app serving the documentation tools for one engine."""
    app = FastAPI(title=f"{name} MCP API", version="0.1.0")
    mcp = MCPServer(engine, name=name)
    app.state.engine = engine
    app.state.mcp = mcp

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"]
    )

    @app.get("/")
    async def root():
        return {
            "name": name,
            "tools": TOOL_NAMES,
            "endpoints": ["/health", "/tools", "/tools/{name}", "/mcp"]
        }

    @app.get("/health")
    def health():
        if not engine.is_ready:
            return JSONResponse(status_code=503, content={"status": "not_ready"})
        metadata = engine.content.metadata_dict()
        return {"status": "ok", "items": metadata["totalItems"], "sources": metadata["sources"],
                "lastProcessed": metadata["lastProcessed"]}

    @app.get("/tools")
    def list_tools():
        return {"tools": TOOLS}

    @app.post("/tools/{tool_name}")
    async def call_tool(tool_name: str, arguments: Optional[Dict[str, Any]] = Body(default=None)):
        try:
            return await mcp.call_tool(tool_name, arguments or {})
        except UnknownToolError as e:
            raise HTTPException(status_code=404, detail=e.message)
        except InvalidArgumentError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except EngineNotReadyError as e:
            raise HTTPException(status_code=503, detail=str(e))
        except Exception as e:
            logger.exception(f"Tool {tool_name} failed: {e}")
            raise HTTPException(status_code=500, detail=f"Tool execution failed: {e}")

    @app.post("/mcp")
    async def mcp_endpoint(request: Request):
        raw = await request.body()
        try:
            payload = json.loads(raw or b"null")
        except json.JSONDecodeError as e:
            return JSONResponse(content={
                "jsonrpc": "2.0",
                "id": None,
                "error": {"code": PARSE_ERROR, "message": f"Parse error: {e}"}
            })
        response = await mcp.handle_request(payload)
        if response is None:
            # Notifications get no body
            return Response(status_code=202)
        return JSONResponse(content=response)

    return app

def serve(engine: QueryEngine, host: str = "127.0.0.1", port: int = 3000, name: str = "docforge",
          cors_origins: Optional[List[str]] = None):
    """Run the HTTP app with uvicorn until interrupted."""
    logger.info(f"Starting {name} HTTP server on http://{host}:{port}")
    uvicorn.run(create_app(engine, name=name, cors_origins=cors_origins), host=host, port=port, log_level="warning")
