import pytest

from clinicflow.automation import TriggerClassifier, TriggerRule


@pytest.fixture()
def classifier():
    return TriggerClassifier()


@pytest.mark.parametrize("title, expected", [
    ("Morpheus8 Touch-up", "morpheus8"),
    ("morpheus full face", "morpheus8"),
    ("BOTOX forehead", "toxins"),
    ("Neurotoxin review", "toxins"),
    ("Wrinkle Treatment", "toxins"),
    ("Juvederm lips", "filler"),
    ("Restylane cheeks", "filler"),
    ("Initial visit", "consultation"),
    ("Consultation", "consultation"),
])
def test_known_titles(classifier, title, expected):
    assert classifier.classify(title) == expected


def test_first_matching_rule_wins(classifier):
    assert classifier.classify("Dermal Filler Consult") == "filler"
    assert classifier.classify("Botox consult after Morpheus8") == "morpheus8"


@pytest.mark.parametrize("title", [None, "", "Hydrafacial", "Laser hair removal"])
def test_misses_return_none(classifier, title):
    assert classifier.classify(title) is None


def test_custom_rules_keep_caller_order():
    custom = TriggerClassifier([
        TriggerRule("peel", ("Chemical Peel",)),
        TriggerRule("filler", ("filler",)),
    ])
    assert custom.classify("chemical peel + filler") == "peel"
    assert custom.classify("Botox") is None


def test_from_mapping():
    custom = TriggerClassifier.from_mapping([("laser", ["ipl", "laser"])])
    assert custom.classify("IPL photofacial") == "laser"
