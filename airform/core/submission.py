"""
Response sink: accepts a submitted answer map, mirrors it into Airtable
as a new record, and stores it locally.

Visibility is evaluated client-side while the form is filled in. By
default the server trusts the submitted answers, matching how the
client-side renderer behaves. With `enforce_visibility` enabled the
server re-runs the evaluator: answers of hidden fields are dropped and missing visible
required fields reject the submission.
"""

import logging
from collections.abc import Callable
from typing import Any

from airform.core.form_state import MissingRequiredFieldsError, prune_hidden_answers
from airform.core.schema import FormDefinition, FormResponse
from airform.core.visibility import is_answered, missing_required_fields

logger = logging.getLogger(__name__)


class SubmissionError(Exception):
    """Raised when a submission cannot be forwarded to Airtable."""


def build_record_fields(form: FormDefinition, answers: dict[str, Any]) -> dict[str, Any]:
    """Return the Airtable `fields` payload for a submission.

    Only answered fields that belong to the form are sent, in form order.
    """
    return {
        f.field_id: answers[f.field_id]
        for f in form.fields
        if is_answered(answers.get(f.field_id))
    }


class ResponseSink:
    """Forwards submissions to Airtable and records them.

    Args:
        repository: Store holding users, forms and responses.
        token_provider: Supplies the form owner's access token.
        client_factory: Builds an AirtableClient for an access token.
        enforce_visibility: Re-run the visibility rules before accepting.
    """

    def __init__(
        self,
        repository,
        token_provider,
        client_factory: Callable[[str], Any],
        enforce_visibility: bool = False,
    ):
        self._repository = repository
        self._token_provider = token_provider
        self._client_factory = client_factory
        self.enforce_visibility = enforce_visibility

    async def submit(self, form: FormDefinition, answers: dict[str, Any]) -> FormResponse:
        """Validate (optionally), forward and persist one submission.

        Raises:
            MissingRequiredFieldsError: With enforcement on, if visible
                required fields are unanswered.
            SubmissionError: If the form owner is no longer connected.
            AirtableError: If Airtable rejects the record. Nothing is
                stored in that case.
        """
        if self.enforce_visibility:
            # Required fields are judged against the pruned answers only
            pruned = prune_hidden_answers(form, answers)
            missing = missing_required_fields(form.fields, pruned)
            if missing:
                raise MissingRequiredFieldsError([f.label or f.field_id for f in missing])
            dropped = sorted(set(answers) - set(pruned))
            if dropped:
                logger.info("Dropping hidden or unknown answers for form %s: %s", form.id, dropped)
            answers = pruned

        owner = self._repository.get_user(form.owner_id)
        if owner is None:
            raise SubmissionError(f"Owner of form '{form.id}' is no longer connected")

        record_fields = build_record_fields(form, answers)
        access_token = await self._token_provider.get_access_token(owner)
        client = self._client_factory(access_token)
        record_id = await client.create_record(form.base_id, form.table_id, record_fields)
        logger.info("Created Airtable record %s for form %s", record_id, form.id)

        response = FormResponse(
            form_id=form.id,
            airtable_record_id=record_id,
            answers=dict(answers),
        )
        return self._repository.add_response(response)
