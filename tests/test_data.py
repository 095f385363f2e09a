import numpy as np
import pandas as pd
import pytest

from bednets import simulate_households, validate_households
from bednets._exceptions import DataError


def make_raw(n=20):
    """A small survey export, with the raw ``household`` column name."""
    df = simulate_households(n=n, seed=3).rename(columns={"household_size": "household"})
    return df


class TestValidateHouseholds:
    def test_valid_data_passes_and_renames_household(self):
        df = validate_households(make_raw())
        assert "household_size" in df.columns
        assert "household" not in df.columns
        assert df["net_num"].isin([0, 1]).all()

    def test_input_not_mutated(self):
        raw = make_raw()
        before = raw.copy()
        validate_households(raw)
        pd.testing.assert_frame_equal(raw, before)

    def test_string_booleans_are_coerced(self):
        raw = make_raw()
        raw["net"] = raw["net"].map({True: "TRUE", False: "FALSE"})
        df = validate_households(raw)
        assert df["net"].dtype == bool
        assert (df["net"].astype(int) == df["net_num"]).all()

    def test_missing_column_raises(self):
        raw = make_raw().drop(columns=["income"])
        with pytest.raises(DataError, match="Missing required columns"):
            validate_households(raw)

    def test_out_of_range_reports_row_id(self):
        raw = make_raw()
        raw.loc[4, "malaria_risk"] = 120.0
        with pytest.raises(DataError) as excinfo:
            validate_households(raw)
        assert excinfo.value.row_id == raw.loc[4, "id"]
        assert excinfo.value.column == "malaria_risk"

    def test_missing_value_raises(self):
        raw = make_raw()
        raw.loc[2, "health"] = np.nan
        with pytest.raises(DataError, match="missing value"):
            validate_households(raw)

    def test_net_num_disagreeing_with_net_raises(self):
        raw = make_raw()
        raw.loc[0, "net_num"] = 1 - raw.loc[0, "net_num"]
        with pytest.raises(DataError, match="disagrees"):
            validate_households(raw)

    def test_non_integer_household_size_raises(self):
        raw = make_raw()
        raw["household"] = raw["household"].astype(float)
        raw.loc[1, "household"] = 2.5
        with pytest.raises(DataError, match="positive integer"):
            validate_households(raw)

    def test_zero_household_size_raises(self):
        raw = make_raw()
        raw.loc[1, "household"] = 0
        with pytest.raises(DataError, match="positive integer"):
            validate_households(raw)

    def test_duplicate_id_raises(self):
        raw = make_raw()
        raw.loc[3, "id"] = raw.loc[2, "id"]
        with pytest.raises(DataError, match="duplicate id"):
            validate_households(raw)

    def test_non_boolean_net_raises(self):
        raw = make_raw()
        raw["net"] = raw["net"].astype(object)
        raw.loc[0, "net"] = "maybe"
        with pytest.raises(DataError, match="boolean"):
            validate_households(raw)


class TestSimulateHouseholds:
    def test_fixed_seed_is_reproducible(self):
        pd.testing.assert_frame_equal(simulate_households(seed=7), simulate_households(seed=7))

    def test_schema_is_valid(self):
        df = validate_households(simulate_households(n=500))
        assert len(df) == 500
        assert df["id"].is_unique

    def test_no_confounding_gives_balanced_treatment(self):
        df = simulate_households(n=5_000, confounding=0.0, seed=1)
        assert abs(df["net_num"].mean() - 0.5) < 0.05
