"""
Environment selection dialog: page and WebSocket channel.

The page at /env-setup/{session_id} opens /ws/{session_id}, sends
registerSession, and renders whatever listRefreshed carries.
"""

import json
import logging
from string import Template

from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import HTMLResponse

from envsetup.services.interactive.protocol import ErrorMessage

logger = logging.getLogger(__name__)

router = APIRouter()

DIALOG_PAGE = Template("""<!doctype html>
<html>
<head>
<meta charset="utf-8">
<title>Select an environment</title>
<style>
body { font-family: sans-serif; max-width: 36rem; margin: 3rem auto; }
li { margin: .4rem 0; }
.error { color: #b00020; white-space: pre-line; }
</style>
</head>
<body>
<h1>Select an environment</h1>
<p id="account"></p>
<div id="error" class="error"></div>
<ul id="envs"></ul>
<p>
  <button id="refresh">Refresh</button>
  <button id="retry">Retry initialization</button>
  <button id="switch">Switch account</button>
  <button id="cancel">Cancel</button>
</p>
<script>
const sessionId = $session_id;
const view = $view;
const ws = new WebSocket(`ws://$${location.host}/ws/$${sessionId}`);
const send = (msg) => ws.send(JSON.stringify(msg));

function render(envs, errorContext, error) {
  const list = document.getElementById("envs");
  list.innerHTML = "";
  for (const env of envs) {
    const item = document.createElement("li");
    const button = document.createElement("button");
    button.textContent = env.alias ? `$${env.alias} ($${env.envId})` : env.envId;
    button.onclick = () => send({type: "selectEnvironment", envId: env.envId});
    item.appendChild(button);
    list.appendChild(item);
  }
  const messages = [];
  if (error) messages.push(error);
  if (errorContext && errorContext.initError) messages.push(errorContext.initError.message);
  if (errorContext && errorContext.createError) messages.push(errorContext.createError.message);
  document.getElementById("error").textContent = messages.join("\\n");
}

document.getElementById("account").textContent = view.account.uin ? `Account: $${view.account.uin}` : "";
render(view.envs, view.errorContext);
ws.onopen = () => send({type: "registerSession", sessionId});
ws.onmessage = (event) => {
  const msg = JSON.parse(event.data);
  if (msg.type === "listRefreshed") render(msg.envs, msg.errorContext, msg.error);
  if (msg.type === "selected") document.body.textContent = `Selected $${msg.envId}. You can close this window.`;
  if (msg.type === "error") document.getElementById("error").textContent = msg.message;
};
document.getElementById("refresh").onclick = () => send({type: "refreshList"});
document.getElementById("retry").onclick = () => send({type: "retryInit"});
document.getElementById("switch").onclick = () => send({type: "switchAccount"});
document.getElementById("cancel").onclick = () => { send({type: "cancel"}); window.close(); };
</script>
</body>
</html>
""")


@router.get("/env-setup/{session_id}", response_class=HTMLResponse)
async def dialog_page(session_id: str, request: Request):
    session = request.app.state.registry.get(session_id)
    if session is None:
        return HTMLResponse("<h1>Session not found or expired</h1>", status_code=404)
    return DIALOG_PAGE.substitute(
        session_id=json.dumps(session_id),
        view=json.dumps(session.view.to_dict()).replace("</", "<\\/"),
    )


@router.websocket("/ws/{session_id}")
async def dialog_websocket(websocket: WebSocket, session_id: str):
    """
    Session channel for one dialog.

    Protocol:
    1. Dialog connects to /ws/{session_id}
    2. Dialog sends 'registerSession'; server answers 'listRefreshed'
    3. 'refreshList' / 'retryInit' may arrive any number of times
    4. 'selectEnvironment', 'cancel' or 'switchAccount' resolves the session
       and the server closes the channel

    Message format: JSON with 'type' field
    """
    registry = websocket.app.state.registry
    await websocket.accept()

    session = await registry.bind_channel(session_id, websocket)
    if session is None:
        await websocket.send_json(
            ErrorMessage(message=f"Session {session_id} is unknown or already connected").to_dict()
        )
        await websocket.close(code=4004, reason="Session unavailable")
        return

    logger.info(f"Dialog connected for session {session_id}")
    try:
        while True:
            try:
                data = await websocket.receive_json()
            except ValueError:
                await session.send(ErrorMessage(message="Message is not valid JSON"))
                continue

            await session.handle_message(data)

            if session.resolved:
                await websocket.close()
                break

    except WebSocketDisconnect:
        logger.info(f"Dialog for session {session_id} disconnected")
    except Exception as e:
        logger.error(f"Dialog WebSocket error: {e}")
    finally:
        await registry.release_channel(session_id, websocket)
