"""Block Kit modal for entering an expense."""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional


EXPENSE_MODAL = 'expense_modal'
EXPENSE_DIRECT_MODAL = 'expense_direct_modal'
SHORTCUT_CALLBACK = 'create_expense_entry'


@dataclass
class ModalInput:
    date: Optional[str]
    amount: Optional[str]
    details: str
    memo: str


def _text(value: str) -> Dict[str, str]:
    return {'type': 'plain_text', 'text': value}


def expense_modal(initial_date: str, metadata: Dict[str, Any],
                  has_file: bool = False,
                  initial_amount: Optional[int] = None,
                  initial_details: Optional[str] = None) -> Dict[str, Any]:
    """Build the expense entry modal.

    Args:
        initial_date: Pre-selected date (YYYY-MM-DD)
        metadata: Stored as JSON in private_metadata (file info, channel)
        has_file: Selects the callback for submissions with a receipt
        initial_amount: Pre-filled amount (e.g. from OCR)
        initial_details: Pre-filled details
    """
    amount_element = {
        'type': 'number_input',
        'action_id': 'amount_input',
        'is_decimal_allowed': False,
        'placeholder': _text('金額を入力'),
    }
    if initial_amount:
        amount_element['initial_value'] = str(initial_amount)

    details_element = {
        'type': 'plain_text_input',
        'action_id': 'details_input',
        'placeholder': _text('利用目的/内容を入力'),
    }
    if initial_details:
        details_element['initial_value'] = initial_details

    return {
        'type': 'modal',
        'callback_id': EXPENSE_MODAL if has_file else EXPENSE_DIRECT_MODAL,
        'private_metadata': json.dumps(metadata, ensure_ascii=False),
        'title': _text('経費精算書の作成'),
        'submit': _text('送信'),
        'blocks': [
            {
                'type': 'input',
                'block_id': 'date_block',
                'optional': True,
                'element': {
                    'type': 'datepicker',
                    'action_id': 'date_input',
                    'initial_date': initial_date,
                    'placeholder': _text('日付を選択'),
                },
                'label': _text('日付'),
            },
            {
                'type': 'input',
                'block_id': 'amount_block',
                'optional': False,
                'element': amount_element,
                'label': _text('金額'),
            },
            {
                'type': 'input',
                'block_id': 'details_block',
                'optional': True,
                'element': details_element,
                'label': _text('利用目的/内容'),
            },
            {
                'type': 'input',
                'block_id': 'memo_block',
                'optional': True,
                'element': {
                    'type': 'plain_text_input',
                    'action_id': 'memo_input',
                    'placeholder': _text('備考を入力'),
                },
                'label': _text('備考'),
            },
        ],
    }


def read_modal(view: Dict[str, Any]) -> ModalInput:
    """Pull the submitted values out of a view_submission payload."""
    values = view.get('state', {}).get('values', {})

    def value(block: str, action: str, key: str = 'value'):
        return (values.get(block, {}).get(action) or {}).get(key)

    return ModalInput(
        date=value('date_block', 'date_input', 'selected_date'),
        amount=value('amount_block', 'amount_input'),
        details=value('details_block', 'details_input') or '',
        memo=value('memo_block', 'memo_input') or '',
    )


def read_metadata(view: Dict[str, Any]) -> Dict[str, Any]:
    raw = view.get('private_metadata') or '{}'
    return json.loads(raw)
