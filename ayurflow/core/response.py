"""
Response envelope shared with the HTTP layer
"""

from datetime import datetime
from typing import Any, Dict, Optional
import uuid


def api_response(
    success: bool,
    data: Any = None,
    error: Optional[str] = None,
    message: Optional[str] = None,
    request_id: Optional[str] = None
) -> Dict[str, Any]:
    """Build the {success, data|error, message, timestamp, requestId} envelope"""
    response: Dict[str, Any] = {'success': success}
    if success:
        response['data'] = data
    else:
        response['error'] = error or "Unknown error"
    if message:
        response['message'] = message
    response['timestamp'] = datetime.utcnow().isoformat()
    response['requestId'] = request_id or str(uuid.uuid4())
    return response
