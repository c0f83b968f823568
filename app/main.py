from fastmcp import FastMCP

from app.core.config import settings
from app.tools.market_data import register_market_tools
from app.tools.trading import register_trading_tools

# Initialize FastMCP server
mcp = FastMCP(settings.PROJECT_NAME)

# Register Tools
register_market_tools(mcp)
register_trading_tools(mcp)

if __name__ == "__main__":
    mcp.run()
