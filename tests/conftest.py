import numpy as np
import pytest

from giniforest import TITANIC_SCHEMA, Feature, Schema


@pytest.fixture
def small_schema():
    """Class rank, sex and age: the three-feature layout of the worked example."""
    return Schema([
        Feature.numeric("pclass"),
        Feature.categorical("sex", reference="female"),
        Feature.numeric("age"),
    ])


@pytest.fixture
def example_records(small_schema):
    return [
        small_schema.record(True, pclass=1, sex="female", age=29),
        small_schema.record(False, pclass=3, sex="male", age=30),
        small_schema.record(False, pclass=1, sex="male", age=40),
        small_schema.record(True, pclass=3, sex="female", age=22),
    ]


def make_passengers(n=200, seed=0, noise=0.1):
    """Synthetic passengers whose label is mostly determined by sex and class."""
    rng = np.random.default_rng(seed)
    records = []
    for _ in range(n):
        sex = "female" if rng.random() < 0.4 else "male"
        pclass = int(rng.integers(1, 4))
        age = None if rng.random() < 0.2 else float(rng.integers(1, 80))
        fare = None if rng.random() < 0.05 else float(rng.uniform(5, 100))
        label = (sex == "female" and pclass < 3) or (age is not None and age < 10)
        if rng.random() < noise:
            label = not label
        records.append(TITANIC_SCHEMA.record(
            label,
            pclass=pclass, sex=sex, age=age,
            sibsp=int(rng.integers(0, 4)), parch=int(rng.integers(0, 3)),
            fare=fare, embarked=str(rng.choice(["S", "C", "Q", ""])),
        ))
    return records


@pytest.fixture
def passengers():
    return make_passengers()


@pytest.fixture
def make_records():
    return make_passengers
