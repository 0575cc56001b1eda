"""In-memory stand-ins for the Google API and Slack clients used in tests.

They mimic the call shapes of googleapiclient resources
(``service.spreadsheets().values().get(...).execute()``) closely enough for
the code under test, and keep their state in plain dictionaries.
"""

import re
from typing import Any, Dict, List, Optional, Tuple


class FakeHttpError(Exception):
    """Raised by the fakes in place of googleapiclient.errors.HttpError."""
    pass


class _Request:
    def __init__(self, fn, *args, **kwargs):
        self._fn = fn
        self._args = args
        self._kwargs = kwargs

    def execute(self):
        return self._fn(*self._args, **self._kwargs)


def column_index(letters: str) -> int:
    """'A' -> 0, 'E' -> 4, 'AA' -> 26"""
    index = 0
    for ch in letters:
        index = index * 26 + (ord(ch.upper()) - ord('A') + 1)
    return index - 1


_CELL_RE = re.compile(r'^([A-Z]+)(\d*)$')


def parse_range(a1: str) -> Tuple[str, int, int, Optional[int], int]:
    """Split 'Sheet!A2:E26' into (sheet, first_row, first_col, last_row, last_col).

    last_row is None for open ranges such as 'A2:E'.
    """
    title, _, cells = a1.partition('!')
    start, _, end = cells.partition(':')
    end = end or start
    m1 = _CELL_RE.match(start)
    m2 = _CELL_RE.match(end)
    first_row = int(m1.group(2)) if m1.group(2) else 1
    last_row = int(m2.group(2)) if m2.group(2) else None
    return title, first_row, column_index(m1.group(1)), last_row, column_index(m2.group(1))


# =============================================================================
# Sheets
# =============================================================================

class FakeSheetsService:
    """Sheets v4 resource backed by dictionaries of cells.

    Cells are stored as {(row, col): str} with 1-indexed rows and 0-indexed
    columns, the way values come back from the API (formatted strings).
    """

    def __init__(self):
        self.spreadsheets_data: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.fail: set = set()

    # -- test helpers ---------------------------------------------------------

    def add_spreadsheet(self, spreadsheet_id: str, titles=()) -> None:
        self.spreadsheets_data[spreadsheet_id] = []
        for title in titles:
            self.add_sheet(spreadsheet_id, title)

    def add_sheet(self, spreadsheet_id: str, title: str,
                  cells: Optional[Dict[Tuple[int, int], str]] = None) -> int:
        sheets = self.spreadsheets_data[spreadsheet_id]
        sheet_id = max([s['sheetId'] for s in sheets], default=0) + 100
        sheets.append({'sheetId': sheet_id, 'title': title, 'cells': dict(cells or {})})
        return sheet_id

    def add_base_sheet(self, spreadsheet_id: str, total_formula: str = '=SUM(C2:C26)') -> int:
        """Add a `_base` template: numbered rows 2-26 and a total cell."""
        cells = {(row, 0): str(row - 1) for row in range(2, 27)}
        cells[(1, 0)] = 'No'
        cells[(1, 1)] = '日付'
        cells[(1, 2)] = '金額'
        cells[(27, 2)] = total_formula
        return self.add_sheet(spreadsheet_id, '_base', cells)

    def sheet(self, spreadsheet_id: str, title: str) -> Optional[Dict[str, Any]]:
        for s in self.spreadsheets_data.get(spreadsheet_id, []):
            if s['title'] == title:
                return s
        return None

    def titles(self, spreadsheet_id: str) -> List[str]:
        return [s['title'] for s in self.spreadsheets_data[spreadsheet_id]]

    def cell(self, spreadsheet_id: str, title: str, a1: str) -> Optional[str]:
        _, row, col, _, _ = parse_range(f"{title}!{a1}")
        return self.sheet(spreadsheet_id, title)['cells'].get((row, col))

    def calls_to(self, method: str) -> List[Dict[str, Any]]:
        return [kwargs for name, kwargs in self.calls if name == method]

    # -- resource interface ---------------------------------------------------

    def spreadsheets(self):
        return _Spreadsheets(self)

    def _record(self, method: str, kwargs: Dict[str, Any]) -> None:
        self.calls.append((method, kwargs))
        if method in self.fail:
            raise FakeHttpError(f"{method} failed")

    def _lookup(self, spreadsheet_id: str) -> List[Dict[str, Any]]:
        if spreadsheet_id not in self.spreadsheets_data:
            raise FakeHttpError(f"Requested entity was not found: {spreadsheet_id}")
        return self.spreadsheets_data[spreadsheet_id]

    def _sheet_for(self, spreadsheet_id: str, title: str) -> Dict[str, Any]:
        for s in self._lookup(spreadsheet_id):
            if s['title'] == title:
                return s
        raise FakeHttpError(f"Unable to parse range: {title}")

    def _read(self, spreadsheet_id: str, a1: str) -> Dict[str, Any]:
        title, first_row, first_col, last_row, last_col = parse_range(a1)
        cells = self._sheet_for(spreadsheet_id, title)['cells']
        if last_row is None:
            last_row = max([r for (r, _) in cells], default=first_row)

        rows = []
        for r in range(first_row, last_row + 1):
            row = [cells.get((r, c), '') for c in range(first_col, last_col + 1)]
            while row and row[-1] == '':
                row.pop()
            rows.append(row)
        while rows and not rows[-1]:
            rows.pop()

        result = {'range': a1}
        if rows:
            result['values'] = rows
        return result

    def _write(self, spreadsheet_id: str, a1: str, values: List[List[Any]]) -> None:
        title, first_row, first_col, _, _ = parse_range(a1)
        cells = self._sheet_for(spreadsheet_id, title)['cells']
        for i, row in enumerate(values):
            for j, value in enumerate(row):
                cells[(first_row + i, first_col + j)] = '' if value is None else str(value)

    def get(self, spreadsheetId, fields=None):
        self._record('get', {'spreadsheetId': spreadsheetId, 'fields': fields})
        sheets = self._lookup(spreadsheetId)
        return {'sheets': [
            {'properties': {'sheetId': s['sheetId'], 'title': s['title'], 'index': i}}
            for i, s in enumerate(sheets)
        ]}

    def batch_update(self, spreadsheetId, body):
        self._record('batchUpdate', {'spreadsheetId': spreadsheetId, 'body': body})
        sheets = self._lookup(spreadsheetId)
        replies = []
        for request in body['requests']:
            if 'duplicateSheet' in request:
                duplicate = request['duplicateSheet']
                source = next(s for s in sheets if s['sheetId'] == duplicate['sourceSheetId'])
                new_id = max(s['sheetId'] for s in sheets) + 1
                new_sheet = {'sheetId': new_id, 'title': duplicate['newSheetName'],
                             'cells': dict(source['cells'])}
                index = duplicate.get('insertSheetIndex', len(sheets))
                sheets.insert(index, new_sheet)
                replies.append({'duplicateSheet': {'properties': {
                    'sheetId': new_id, 'title': new_sheet['title'], 'index': index}}})
            elif 'addSheet' in request:
                title = request['addSheet']['properties']['title']
                new_id = self.add_sheet(spreadsheetId, title)
                replies.append({'addSheet': {'properties': {'sheetId': new_id, 'title': title}}})
            else:
                replies.append({})
        return {'spreadsheetId': spreadsheetId, 'replies': replies}

    def values_get(self, spreadsheetId, range):
        self._record('values.get', {'spreadsheetId': spreadsheetId, 'range': range})
        return self._read(spreadsheetId, range)

    def values_batch_get(self, spreadsheetId, ranges):
        self._record('values.batchGet', {'spreadsheetId': spreadsheetId, 'ranges': ranges})
        return {'valueRanges': [self._read(spreadsheetId, r) for r in ranges]}

    def values_update(self, spreadsheetId, range, valueInputOption, body):
        self._record('values.update', {'spreadsheetId': spreadsheetId, 'range': range,
                                       'valueInputOption': valueInputOption, 'body': body})
        self._write(spreadsheetId, range, body['values'])
        return {'updatedRange': range}

    def values_append(self, spreadsheetId, range, valueInputOption, body,
                      insertDataOption=None):
        self._record('values.append', {'spreadsheetId': spreadsheetId, 'range': range,
                                       'body': body, 'insertDataOption': insertDataOption})
        title, first_row, first_col, _, _ = parse_range(range)
        cells = self._sheet_for(spreadsheetId, title)['cells']
        next_row = max([r for (r, _) in cells] + [first_row - 1]) + 1
        col = 'ABCDEFGHIJKLMNOPQRSTUVWXYZ'[first_col]
        self._write(spreadsheetId, f"{title}!{col}{next_row}", body['values'])
        return {'updates': {'updatedRange': f"{title}!{col}{next_row}"}}


class _Spreadsheets:
    def __init__(self, fake: FakeSheetsService):
        self._fake = fake

    def get(self, **kwargs):
        return _Request(self._fake.get, **kwargs)

    def batchUpdate(self, **kwargs):
        return _Request(self._fake.batch_update, **kwargs)

    def values(self):
        return _Values(self._fake)


class _Values:
    def __init__(self, fake: FakeSheetsService):
        self._fake = fake

    def get(self, **kwargs):
        return _Request(self._fake.values_get, **kwargs)

    def batchGet(self, **kwargs):
        return _Request(self._fake.values_batch_get, **kwargs)

    def update(self, **kwargs):
        return _Request(self._fake.values_update, **kwargs)

    def append(self, **kwargs):
        return _Request(self._fake.values_append, **kwargs)


# =============================================================================
# Drive
# =============================================================================

FOLDER = 'application/vnd.google-apps.folder'

_CLAUSE_RE = re.compile(
    r"^(?:(?P<field>name|mimeType)\s*(?P<op>!=|=)\s*'(?P<value>(?:[^'\\]|\\.)*)'"
    r"|'(?P<parent>[^']+)' in parents"
    r"|trashed\s*=\s*(?P<trashed>true|false))$"
)


def _unescape(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value)


class FakeDriveService:
    """Drive v3 resource backed by a dictionary of files."""

    def __init__(self, page_size_limit: Optional[int] = None):
        self.files_data: Dict[str, Dict[str, Any]] = {}
        self.permissions_data: List[Dict[str, Any]] = []
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.queries: List[str] = []
        self.fail: set = set()
        self.page_size_limit = page_size_limit
        self._next_id = 1

    # -- test helpers ---------------------------------------------------------

    def _new_id(self, prefix: str = 'file') -> str:
        file_id = f"{prefix}{self._next_id:04d}"
        self._next_id += 1
        return file_id

    def add_folder(self, name: str, parent: str) -> str:
        return self.add_file(name, parent, mime_type=FOLDER)

    def add_file(self, name: str, parent: str, content: bytes = b'',
                 mime_type: str = 'application/octet-stream') -> str:
        file_id = self._new_id('folder' if mime_type == FOLDER else 'file')
        self.files_data[file_id] = {
            'id': file_id,
            'name': name,
            'mimeType': mime_type,
            'parents': [parent],
            'trashed': False,
            'content': content,
            'webViewLink': f"https://drive.google.com/file/d/{file_id}/view?usp=drivesdk",
        }
        return file_id

    def children(self, parent: str, name: Optional[str] = None) -> List[Dict[str, Any]]:
        return [f for f in self.files_data.values()
                if parent in f['parents'] and (name is None or f['name'] == name)]

    def folder_path(self, *names: str, root: str = 'root') -> Optional[str]:
        """Return the ID at root/names[0]/names[1]/..., or None."""
        current = root
        for name in names:
            matches = [f for f in self.children(current, name) if f['mimeType'] == FOLDER]
            if not matches:
                return None
            current = matches[0]['id']
        return current

    # -- resource interface ---------------------------------------------------

    def files(self):
        return _Files(self)

    def permissions(self):
        return _Permissions(self)

    def _record(self, method: str, kwargs: Dict[str, Any]) -> None:
        self.calls.append((method, kwargs))
        if method in self.fail:
            raise FakeHttpError(f"{method} failed")

    def _matches(self, item: Dict[str, Any], q: str) -> bool:
        for clause in q.split(' and '):
            m = _CLAUSE_RE.match(clause.strip())
            if m is None:
                raise FakeHttpError(f"Invalid query clause: {clause}")
            if m.group('field'):
                actual = item['name'] if m.group('field') == 'name' else item['mimeType']
                expected = _unescape(m.group('value'))
                if (m.group('op') == '=') != (actual == expected):
                    return False
            elif m.group('parent'):
                if m.group('parent') not in item['parents']:
                    return False
            elif item['trashed'] != (m.group('trashed') == 'true'):
                return False
        return True

    def list(self, q=None, fields=None, pageSize=100, orderBy=None, pageToken=None,
             spaces=None, supportsAllDrives=None, includeItemsFromAllDrives=None):
        self._record('files.list', {'q': q, 'orderBy': orderBy, 'pageToken': pageToken})
        self.queries.append(q)
        items = [f for f in self.files_data.values() if not q or self._matches(f, q)]
        if orderBy == 'name':
            items.sort(key=lambda f: f['name'])

        size = pageSize or 100
        if self.page_size_limit:
            size = min(size, self.page_size_limit)
        start = int(pageToken or 0)
        page = items[start:start + size]

        result = {'files': [
            {k: f[k] for k in ('id', 'name', 'mimeType', 'webViewLink')} for f in page
        ]}
        if start + size < len(items):
            result['nextPageToken'] = str(start + size)
        return result

    def create(self, body, media_body=None, fields=None, supportsAllDrives=None):
        self._record('files.create', {'body': body})
        content = b''
        if media_body is not None:
            content = media_body.getbytes(0, media_body.size())
        file_id = self.add_file(body['name'], body['parents'][0], content,
                                body.get('mimeType', 'application/octet-stream'))
        item = self.files_data[file_id]
        return {'id': file_id, 'webViewLink': item['webViewLink']}

    def get(self, fileId, fields=None, supportsAllDrives=None):
        self._record('files.get', {'fileId': fileId})
        if fileId not in self.files_data:
            raise FakeHttpError(f"File not found: {fileId}")
        item = self.files_data[fileId]
        return {'id': item['id'], 'name': item['name']}

    def get_media(self, fileId, supportsAllDrives=None):
        self._record('files.get_media', {'fileId': fileId})
        if fileId not in self.files_data:
            raise FakeHttpError(f"File not found: {fileId}")
        return self.files_data[fileId]['content']

    def delete(self, fileId, supportsAllDrives=None):
        self._record('files.delete', {'fileId': fileId})
        if fileId not in self.files_data:
            raise FakeHttpError(f"File not found: {fileId}")
        del self.files_data[fileId]
        return ''

    def create_permission(self, fileId, body, supportsAllDrives=None):
        self._record('permissions.create', {'fileId': fileId, 'body': body})
        self.permissions_data.append({'fileId': fileId, **body})
        return {'id': f"perm-{len(self.permissions_data)}"}


class _Files:
    def __init__(self, fake: FakeDriveService):
        self._fake = fake

    def list(self, **kwargs):
        return _Request(self._fake.list, **kwargs)

    def create(self, **kwargs):
        return _Request(self._fake.create, **kwargs)

    def get(self, **kwargs):
        return _Request(self._fake.get, **kwargs)

    def get_media(self, **kwargs):
        return _Request(self._fake.get_media, **kwargs)

    def delete(self, **kwargs):
        return _Request(self._fake.delete, **kwargs)


class _Permissions:
    def __init__(self, fake: FakeDriveService):
        self._fake = fake

    def create(self, **kwargs):
        return _Request(self._fake.create_permission, **kwargs)


# =============================================================================
# HTTP session (sheet PDF export)
# =============================================================================

class FakeResponse:
    def __init__(self, status_code: int = 200, content: bytes = b''):
        self.status_code = status_code
        self.content = content


class FakeHttp:
    """Stands in for google.auth.transport.requests.AuthorizedSession."""

    def __init__(self, content: bytes = b'', status_code: int = 200):
        self.content = content
        self.status_code = status_code
        self.requests: List[Tuple[str, Dict[str, Any]]] = []

    def get(self, url, params=None):
        self.requests.append((url, dict(params or {})))
        return FakeResponse(self.status_code, self.content)


# =============================================================================
# Slack
# =============================================================================

class FakeSlackClient:
    """Records Web API calls made through slack_sdk.WebClient."""

    def __init__(self, email: Optional[str] = 'user@example.com'):
        self.email = email
        self.messages: List[Dict[str, Any]] = []
        self.views: List[Dict[str, Any]] = []
        self.uploads: List[Dict[str, Any]] = []
        self._ts = 0

    def chat_postMessage(self, channel, text, thread_ts=None, **kwargs):
        self._ts += 1
        ts = f"1700000000.{self._ts:06d}"
        self.messages.append({'channel': channel, 'text': text, 'thread_ts': thread_ts})
        # Posting to a user ID opens the DM channel
        dm = f"D{channel[1:]}" if channel.startswith('U') else channel
        return {'ok': True, 'channel': dm, 'ts': ts}

    def views_open(self, trigger_id, view):
        self.views.append({'trigger_id': trigger_id, 'view': view})
        return {'ok': True}

    def users_info(self, user):
        profile = {'real_name': 'Test User'}
        if self.email:
            profile['email'] = self.email
        return {'ok': True, 'user': {'id': user, 'profile': profile}}

    def files_upload_v2(self, **kwargs):
        with open(kwargs['file'], 'rb') as f:
            kwargs['content'] = f.read()
        self.uploads.append(kwargs)
        return {'ok': True}


class Recorder:
    """Callable that records its arguments; used for Bolt's ack and respond."""

    def __init__(self):
        self.calls: List[Tuple[tuple, Dict[str, Any]]] = []

    def __call__(self, *args, **kwargs):
        self.calls.append((args, kwargs))

    @property
    def texts(self) -> List[str]:
        return [args[0] for args, _ in self.calls if args]
