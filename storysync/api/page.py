"""
Collaboration page served at ``/``.

A single self-contained HTML document: create or join a session by
code, then edit the shared text, column and story cards. The page talks
to ``/ws?session=<code>`` on the same host.
"""

INDEX_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <title>StorySync</title>
  <style>
    body {
      font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif;
      background: #f4f6f8;
      margin: 0;
      padding: 2em 1em;
      display: flex;
      justify-content: center;
      box-sizing: border-box;
    }
    .container {
      background: #fff;
      padding: 2em 2.5em;
      border-radius: 12px;
      box-shadow: 0 6px 20px rgba(0,0,0,0.12);
      max-width: 640px;
      width: 100%;
    }
    h1 { color: #2c3e50; text-align: center; margin-top: 0; }
    input[type="text"], textarea {
      padding: 10px 12px;
      font-size: 1rem;
      width: 100%;
      border: 2px solid #ddd;
      border-radius: 6px;
      box-sizing: border-box;
      margin-top: 0.6em;
    }
    .buttons { margin-top: 1em; display: flex; gap: 10px; }
    button {
      flex: 1;
      padding: 10px 0;
      font-size: 1rem;
      border: none;
      border-radius: 6px;
      cursor: pointer;
      color: white;
      font-weight: 600;
      background-color: #3498db;
    }
    button#create { background-color: #27ae60; }
    button.delete { flex: 0 0 auto; padding: 6px 10px; background-color: #e74c3c; }
    #info { font-weight: 600; min-height: 1.5em; color: #555; }
    #info.success { color: #27ae60; }
    #info.error { color: #e74c3c; }
    .card { display: flex; gap: 8px; align-items: center; }
    .card textarea { flex: 1; }
  </style>
</head>
<body>
  <div class="container">
    <h1>StorySync</h1>
    <input type="text" id="code" placeholder="Enter a session code" autocomplete="off" spellcheck="false" />
    <div class="buttons">
      <button id="create">Create New Session</button>
      <button id="join">Join Session</button>
    </div>
    <p id="info"></p>

    <textarea id="text" rows="6" placeholder="Shared text..."></textarea>
    <input type="text" id="column" placeholder="Column" />

    <h3>Story cards</h3>
    <div id="cards"></div>
    <div class="buttons"><button id="add-card">Add Card</button></div>
  </div>

  <script>
    const codeInput = document.getElementById('code');
    const info = document.getElementById('info');
    const textArea = document.getElementById('text');
    const columnInput = document.getElementById('column');
    const cardsDiv = document.getElementById('cards');

    let ws = null;
    let nextIndex = 0;

    function setInfo(message, cls) {
      info.textContent = message;
      info.className = cls || '';
    }

    function send(message) {
      if (ws && ws.readyState === WebSocket.OPEN) {
        ws.send(JSON.stringify(message));
      }
    }

    function cardElement(cardId) {
      let row = document.getElementById('card-' + cardId);
      if (row) return row;
      row = document.createElement('div');
      row.className = 'card';
      row.id = 'card-' + cardId;
      const body = document.createElement('textarea');
      body.rows = 2;
      body.addEventListener('input', () => {
        send({type: 'card-update', cardId: cardId, cardIndex: Number(row.dataset.index), data: body.value});
      });
      const del = document.createElement('button');
      del.className = 'delete';
      del.textContent = 'X';
      del.addEventListener('click', () => {
        row.remove();
        send({type: 'card-delete', cardId: cardId});
      });
      row.appendChild(body);
      row.appendChild(del);
      cardsDiv.appendChild(row);
      return row;
    }

    function applyMessage(message) {
      if (message.type === 'text-update') {
        textArea.value = message.content;
      } else if (message.type === 'column-update') {
        columnInput.value = message.content;
      } else if (message.type === 'card-update') {
        const row = cardElement(message.cardId);
        row.dataset.index = message.cardIndex;
        nextIndex = Math.max(nextIndex, (message.cardIndex || 0) + 1);
        row.querySelector('textarea').value = message.data == null ? '' : message.data;
      } else if (message.type === 'card-delete') {
        const row = document.getElementById('card-' + message.cardId);
        if (row) row.remove();
      }
    }

    async function generateCode() {
      const response = await fetch('/api/v1/session-code');
      const body = await response.json();
      return body.code;
    }

    function connect(code) {
      if (ws) {
        ws.close();
        ws = null;
      }
      textArea.value = '';
      columnInput.value = '';
      cardsDiv.innerHTML = '';
      nextIndex = 0;

      const scheme = location.protocol === 'https:' ? 'wss' : 'ws';
      ws = new WebSocket(scheme + '://' + location.host + '/ws?session=' + encodeURIComponent(code));
      ws.onopen = () => setInfo('Connected to session ' + code, 'success');
      ws.onmessage = (event) => {
        try {
          applyMessage(JSON.parse(event.data));
        } catch (e) {
          console.error('Bad frame', e);
        }
      };
      ws.onclose = () => setInfo('Disconnected from session.');
      ws.onerror = () => setInfo('WebSocket error', 'error');
    }

    document.getElementById('create').addEventListener('click', async () => {
      let code = codeInput.value.trim();
      if (!code) {
        code = await generateCode();
        codeInput.value = code;
      }
      setInfo('New session created with code: ' + code, 'success');
      connect(code);
    });

    document.getElementById('join').addEventListener('click', () => {
      const code = codeInput.value.trim();
      if (!code) {
        setInfo('Please enter a valid session code to join.', 'error');
        return;
      }
      setInfo('Joining session: ' + code, 'success');
      connect(code);
    });

    document.getElementById('add-card').addEventListener('click', () => {
      const cardId = Math.random().toString(36).slice(2, 10);
      const row = cardElement(cardId);
      row.dataset.index = nextIndex++;
      send({type: 'card-update', cardId: cardId, cardIndex: Number(row.dataset.index), data: ''});
    });

    textArea.addEventListener('input', () => send({type: 'text-update', content: textArea.value}));
    columnInput.addEventListener('input', () => send({type: 'column-update', content: columnInput.value}));
  </script>
</body>
</html>
"""
