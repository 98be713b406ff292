"""Environment configuration for the tool dispatch backend."""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Completion service configuration
COMPLETION_API_KEY = os.getenv("OPENAI_API_KEY")
COMPLETION_ORGANIZATION = os.getenv("OPENAI_ORGANIZATION_ID")
COMPLETION_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
COMPLETION_MAX_RETRIES = int(os.getenv("COMPLETION_MAX_RETRIES", "2"))
COMPLETION_RETRY_BACKOFF = float(os.getenv("COMPLETION_RETRY_BACKOFF", "1.0"))
COMPLETION_TIMEOUT = float(os.getenv("COMPLETION_TIMEOUT", "300"))

# Tool HTTP calls
TOOL_REQUEST_TIMEOUT = float(os.getenv("TOOL_REQUEST_TIMEOUT", "60"))
TOOL_CALLS_CONCURRENT = os.getenv("TOOL_CALLS_CONCURRENT", "false").lower() == "true"

# Server
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    if origin.strip()
]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
