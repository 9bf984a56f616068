"""Per-section field policies for medical history updates.

Each history section (family, allergic, psychiatric, ...) is a set of
versioned fields. A ``FieldPolicy`` says what shape a field's data has and
which extra mutation check applies on top of the shape's default rule.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from clinic_backend.history.documents import FieldShape
from clinic_backend.history.exceptions import UnknownSectionError


class MutationCheck(str, Enum):
    POSITIONAL = 'positional'
    MEDICATION = 'medication'


@dataclass(frozen=True)
class FieldPolicy:
    shape: FieldShape
    mutation_check: MutationCheck | None = None
    ignored_keys: frozenset[str] = frozenset()


@dataclass(frozen=True)
class SectionPolicy:
    """Fields of one history section and the message used when it is rejected.

    ``message_key`` indexes ``history.responses.MESSAGES``.
    """

    name: str
    fields: dict[str, FieldPolicy] = field(default_factory=dict)
    message_key: str = 'update'

    def policy_for(self, name: str) -> FieldPolicy | None:
        return self.fields.get(name)


SCALAR_LIST = FieldPolicy(FieldShape.SCALAR_LIST)
RECORD_LIST = FieldPolicy(FieldShape.RECORD_LIST)
POSITIONAL_RECORD_LIST = FieldPolicy(FieldShape.RECORD_LIST, MutationCheck.POSITIONAL)
MEDICATION_RECORD_LIST = FieldPolicy(FieldShape.RECORD_LIST, MutationCheck.MEDICATION)
RECORD = FieldPolicy(FieldShape.RECORD)
COUNTERS = FieldPolicy(FieldShape.COUNTERS)


def _section(name: str, message_key: str, **fields: FieldPolicy) -> SectionPolicy:
    return SectionPolicy(name=name, fields=dict(fields), message_key=message_key)


SECTIONS: dict[str, SectionPolicy] = {
    section.name: section
    for section in (
        _section(
            'family',
            'update',
            hypertension=SCALAR_LIST,
            diabetesMellitus=SCALAR_LIST,
            hypothyroidism=SCALAR_LIST,
            asthma=SCALAR_LIST,
            convulsions=SCALAR_LIST,
            myocardialInfarction=SCALAR_LIST,
            cancer=RECORD_LIST,
            cardiacDiseases=RECORD_LIST,
            renalDiseases=RECORD_LIST,
            others=RECORD_LIST,
        ),
        _section(
            'personal',
            'update',
            hypertension=POSITIONAL_RECORD_LIST,
            diabetesMellitus=POSITIONAL_RECORD_LIST,
            hypothyroidism=POSITIONAL_RECORD_LIST,
            # Years of diagnosis, e.g. [2012, 2016].
            asthma=SCALAR_LIST,
            convulsions=POSITIONAL_RECORD_LIST,
            myocardialInfarction=POSITIONAL_RECORD_LIST,
            cancer=POSITIONAL_RECORD_LIST,
            cardiacDiseases=POSITIONAL_RECORD_LIST,
            renalDiseases=POSITIONAL_RECORD_LIST,
            others=POSITIONAL_RECORD_LIST,
        ),
        _section(
            'allergic',
            'saved_info',
            medication=POSITIONAL_RECORD_LIST,
            food=POSITIONAL_RECORD_LIST,
            dust=POSITIONAL_RECORD_LIST,
            pollen=POSITIONAL_RECORD_LIST,
            climateChange=POSITIONAL_RECORD_LIST,
            animals=POSITIONAL_RECORD_LIST,
            others=POSITIONAL_RECORD_LIST,
        ),
        _section('surgical', 'saved_info', surgeries=RECORD_LIST),
        _section('traumatological', 'saved_info', traumas=POSITIONAL_RECORD_LIST),
        _section(
            'psychiatric',
            'saved_info',
            depression=MEDICATION_RECORD_LIST,
            anxiety=MEDICATION_RECORD_LIST,
            ocd=MEDICATION_RECORD_LIST,
            adhd=MEDICATION_RECORD_LIST,
            bipolar=MEDICATION_RECORD_LIST,
            other=MEDICATION_RECORD_LIST,
        ),
        _section('nonpathological', 'update', smoker=RECORD, drink=RECORD, drugs=RECORD),
        _section(
            'gynecoobstetric',
            'modify',
            firstMenstrualPeriod=RECORD,
            regularCycles=RECORD,
            painfulMenstruation=RECORD,
            pregnancies=COUNTERS,
            diagnosedIllnesses=RECORD,
            hasSurgeries=FieldPolicy(
                FieldShape.RECORD,
                ignored_keys=frozenset({'ovarianCystsSurgery'}),
            ),
        ),
    )
}


def get_section(name: str) -> SectionPolicy:
    try:
        return SECTIONS[name]
    except KeyError:
        raise UnknownSectionError(name) from None
