"""Identity reconciliation: match contact facts to chains, extend and merge them.

A chain is one primary contact plus every secondary whose ``linkedId`` is the
primary's id. It is always read fresh from the store, primary first.
"""

import logging
from typing import Dict, List, Optional

from contact_store import ContactStore
from db_models import Contact, ContactResponse, LinkPrecedence
from db_setup import Database
from errors import ChainIntegrityError, ContactNotFoundError, InvalidRequestError

logger = logging.getLogger(__name__)


def find_matches(store: ContactStore, email: Optional[str] = None, phone_number: Optional[str] = None) -> List[Contact]:
    """Every live contact whose email or phone equals the supplied value."""
    if not email and not phone_number:
        raise InvalidRequestError()
    return store.find_contacts(email or None, phone_number or None)


def resolve_chain(store: ContactStore, contact_id: int) -> List[Contact]:
    contact = store.get_contact(contact_id)
    if contact is None:
        raise ContactNotFoundError(contact_id)

    primary = contact if contact.is_primary else store.get_contact(contact.chain_id)
    if primary is None or not primary.is_primary:
        raise ChainIntegrityError(contact.chain_id)

    return [primary] + store.get_secondaries(primary.id)


def merge_chains(store: ContactStore, chains: List[List[Contact]]) -> Contact:
    """Collapse chains into the one whose primary is oldest.

    Ties on createdAt go to the lower id. Every other primary is demoted to a
    secondary of the survivor and its secondaries are relinked to the survivor
    in the same transaction, so no secondary ever points at a secondary.
    """
    primaries = [chain[0] for chain in chains]
    survivor = min(primaries, key=lambda c: (c.createdAt, c.id))

    for primary in primaries:
        if primary.id == survivor.id:
            continue
        store.update_to_secondary(primary.id, survivor.id)
        moved = store.relink_secondaries(primary.id, survivor.id)
        logger.info(
            "Demoted contact %s under primary %s, relinked %s secondaries",
            primary.id, survivor.id, moved,
        )

    return survivor


def has_novel_fact(chain: List[Contact], email: Optional[str], phone_number: Optional[str]) -> bool:
    """True when the request supplies a value the chain does not hold yet."""
    if email and email not in {c.email for c in chain}:
        return True
    if phone_number and phone_number not in {c.phoneNumber for c in chain}:
        return True
    return False


def build_view(chain: List[Contact]) -> ContactResponse:
    emails = []
    phone_numbers = []
    for contact in chain:
        if contact.email and contact.email not in emails:
            emails.append(contact.email)
        if contact.phoneNumber and contact.phoneNumber not in phone_numbers:
            phone_numbers.append(contact.phoneNumber)

    return ContactResponse(
        primaryContactId=chain[0].id,
        emails=emails,
        phoneNumbers=phone_numbers,
        secondaryContactIds=[c.id for c in chain[1:]],
    )


class IdentityResolver:
    """Decides, per identify call, whether to create, extend or merge identities.

    The whole read-decide-mutate-reread sequence runs in one database
    transaction: concurrent calls on overlapping chains are serialized and a
    failure part-way through a merge leaves nothing behind.
    """

    def __init__(self, database: Database):
        self.database = database

    def identify(self, email: Optional[str] = None, phone_number: Optional[str] = None) -> ContactResponse:
        email = email or None
        phone_number = phone_number or None
        if email is None and phone_number is None:
            raise InvalidRequestError()

        with self.database.transaction() as conn:
            chain, outcome = self.reconcile(ContactStore(conn), email, phone_number)

        logger.info(
            "identify %s: primary=%s secondaries=%s",
            outcome, chain[0].id, len(chain) - 1,
        )
        return build_view(chain)

    def reconcile(self, store: ContactStore, email: Optional[str], phone_number: Optional[str]):
        """Apply one identify call to ``store``; returns (chain, outcome)."""
        matches = find_matches(store, email, phone_number)

        if not matches:
            contact = store.create_contact(email, phone_number, None, LinkPrecedence.PRIMARY)
            return resolve_chain(store, contact.id), "created"

        chains: Dict[int, List[Contact]] = {}
        for match in matches:
            if match.chain_id not in chains:
                chains[match.chain_id] = resolve_chain(store, match.id)

        if len(chains) == 1:
            chain = next(iter(chains.values()))
            outcome = "unchanged"
        else:
            survivor = merge_chains(store, list(chains.values()))
            chain = resolve_chain(store, survivor.id)
            outcome = "merged"

        if has_novel_fact(chain, email, phone_number):
            primary_id = chain[0].id
            store.create_contact(email, phone_number, primary_id, LinkPrecedence.SECONDARY)
            chain = resolve_chain(store, primary_id)
            if outcome == "unchanged":
                outcome = "extended"

        return chain, outcome
