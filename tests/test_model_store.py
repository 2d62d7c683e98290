"""
ORN Prognosis Model - Model Store Tests
=======================================
Artifact loading, validation and immutability.
"""

import numpy as np
import pytest
import yaml

from orn_predictor.config import AppSettings, ReferenceOption, REFERENCE_STYLES, SettingsError
from orn_predictor.model_store import (
    ArtifactError, load_model, load_model_store, load_reference_curve,
)


def _write_model(path, data):
    with open(path, "w") as f:
        yaml.safe_dump(data, f)
    return path


class TestShippedArtifacts:
    """Test the artifacts bundled with the package"""

    def test_store_loads(self, store):
        """Test model and all three reference curves are present"""
        assert store.model.cause == 1
        assert set(store.references) == set(ReferenceOption)

    def test_reference_curves_cover_grid(self, store):
        """Test each curve spans 0-114 months with CIF in [0, 1]"""
        for option in ReferenceOption:
            ref = store.reference(option)
            assert ref.times[0] == 0
            assert ref.times[-1] == 114
            assert np.all((ref.mean_cif >= 0) & (ref.mean_cif <= 1))

    def test_positive_cohort_above_negative(self, store):
        """Test the ORN-positive average sits above the ORN-negative one"""
        pos = store.reference(ReferenceOption.POSITIVE).mean_cif
        neg = store.reference(ReferenceOption.NEGATIVE).mean_cif
        assert np.all(pos[1:] > neg[1:])

    def test_design_columns_all_have_coefficients(self, store):
        """Test every design column has a coefficient"""
        assert set(store.model.design_columns()) == set(store.model.coefficients)


class TestModelLoading:
    """Test the YAML model loader"""

    def test_loads_simple_model(self, simple_store):
        """Test fields are parsed from YAML"""
        model = simple_store.model
        assert model.version == "test"
        assert model.factor_levels["Node"] == ("0", "1", "2", "3")
        np.testing.assert_array_equal(model.baseline_times, [1.0, 2.0, 10.0])
        assert model.max_time == 10.0

    def test_baseline_step_function(self, simple_store):
        """Test H0 is right-continuous, zero before the first jump and held after the last"""
        h = simple_store.model.baseline_at([0.0, 0.999, 1.0, 1.999, 2.0, 9.0, 10.0, 500.0])
        np.testing.assert_array_equal(h, [0.0, 0.0, 0.1, 0.1, 0.3, 0.3, 0.5, 0.5])

    def test_missing_file(self, tmp_path):
        """Test a missing model artifact"""
        with pytest.raises(ArtifactError, match="not found"):
            load_model(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        """Test a file that is not YAML"""
        path = tmp_path / "model.yaml"
        path.write_text("features: [unclosed\n")
        with pytest.raises(ArtifactError, match="YAML"):
            load_model(path)

    def test_missing_section(self, tmp_path, simple_settings):
        """Test a model without a baseline"""
        data = yaml.safe_load(simple_settings.model_path.read_text())
        del data["baseline"]
        with pytest.raises(ArtifactError, match="baseline"):
            load_model(_write_model(tmp_path / "m.yaml", data))

    @pytest.mark.parametrize("baseline", [
        {"time": [1.0, 2.0], "cumhaz": [0.1]},
        {"time": [2.0, 1.0], "cumhaz": [0.1, 0.2]},
        {"time": [1.0, 2.0], "cumhaz": [0.2, 0.1]},
        {"time": [-1.0, 2.0], "cumhaz": [0.1, 0.2]},
        {"time": [], "cumhaz": []},
        {"time": ["a", "b"], "cumhaz": [0.1, 0.2]},
    ])
    def test_bad_baseline(self, tmp_path, simple_settings, baseline):
        """Test malformed baseline hazards are fatal"""
        data = yaml.safe_load(simple_settings.model_path.read_text())
        data["baseline"] = baseline
        with pytest.raises(ArtifactError):
            load_model(_write_model(tmp_path / "m.yaml", data))

    def test_missing_coefficient(self, tmp_path, simple_settings):
        """Test a design column without a coefficient"""
        data = yaml.safe_load(simple_settings.model_path.read_text())
        del data["coefficients"]["Node2"]
        with pytest.raises(ArtifactError, match="Node2"):
            load_model(_write_model(tmp_path / "m.yaml", data))

    def test_unexpected_coefficient(self, tmp_path, simple_settings):
        """Test a coefficient with no design column"""
        data = yaml.safe_load(simple_settings.model_path.read_text())
        data["coefficients"]["Node9"] = 1.0
        with pytest.raises(ArtifactError, match="Node9"):
            load_model(_write_model(tmp_path / "m.yaml", data))

    def test_factor_not_in_features(self, tmp_path, simple_settings):
        """Test factor levels for an unknown column"""
        data = yaml.safe_load(simple_settings.model_path.read_text())
        data["factors"]["Gender"] = ["M", "F"]
        with pytest.raises(ArtifactError, match="Gender"):
            load_model(_write_model(tmp_path / "m.yaml", data))

    def test_numeric_levels_read_as_strings(self, tmp_path, simple_settings):
        """Test unquoted YAML levels still match the form's level strings"""
        data = yaml.safe_load(simple_settings.model_path.read_text())
        data["factors"]["Node"] = [0, 1, 2, 3]
        model = load_model(_write_model(tmp_path / "m.yaml", data))
        assert model.factor_levels["Node"] == ("0", "1", "2", "3")


class TestReferenceCurves:
    """Test reference curve loading"""

    def test_sorted_on_load(self, simple_store):
        """Test rows are ordered by time"""
        ref = simple_store.reference(ReferenceOption.OVERALL)
        np.testing.assert_array_equal(ref.times, [0.0, 10.0])
        np.testing.assert_array_equal(ref.mean_cif, [0.0, 0.1])

    def test_label(self, simple_store):
        """Test labels come from the fixed styles"""
        ref = simple_store.reference(ReferenceOption.NEGATIVE)
        assert ref.label == REFERENCE_STYLES[ReferenceOption.NEGATIVE].label

    def test_missing_columns(self, tmp_path):
        """Test a CSV without MeanCIF"""
        path = tmp_path / "ref.csv"
        path.write_text("Time,CIF\n0,0\n")
        with pytest.raises(ArtifactError, match="MeanCIF"):
            load_reference_curve(ReferenceOption.OVERALL, path)

    def test_non_numeric_values(self, tmp_path):
        """Test text in the value column"""
        path = tmp_path / "ref.csv"
        path.write_text("Time,MeanCIF\n0,zero\n")
        with pytest.raises(ArtifactError):
            load_reference_curve(ReferenceOption.OVERALL, path)

    def test_missing_reference_is_fatal(self, simple_settings):
        """Test the store refuses to load without every curve"""
        simple_settings.reference_path(ReferenceOption.POSITIVE).unlink()
        with pytest.raises(ArtifactError, match="not found"):
            load_model_store(simple_settings)

    def test_to_frame_is_a_copy(self, simple_store):
        """Test frames handed out do not alias the stored arrays"""
        ref = simple_store.reference(ReferenceOption.OVERALL)
        frame = ref.to_frame()
        frame.loc[0, "MeanCIF"] = 0.9
        assert ref.mean_cif[0] == 0.0


class TestImmutability:
    """Test the shared store cannot be modified"""

    def test_arrays_read_only(self, simple_store):
        """Test numpy arrays reject writes"""
        with pytest.raises(ValueError):
            simple_store.model.baseline_cumhaz[0] = 1.0
        with pytest.raises(ValueError):
            simple_store.reference(ReferenceOption.OVERALL).mean_cif[0] = 1.0

    def test_mappings_read_only(self, simple_store):
        """Test coefficient and reference mappings reject writes"""
        with pytest.raises(TypeError):
            simple_store.model.coefficients["Age"] = 1.0
        with pytest.raises(TypeError):
            simple_store.references[ReferenceOption.OVERALL] = None

    def test_frozen(self, simple_store):
        """Test attributes cannot be reassigned"""
        with pytest.raises(AttributeError):
            simple_store.model = None


class TestSettings:
    """Test environment-driven settings"""

    def test_defaults(self):
        """Test defaults without any environment"""
        settings = AppSettings.from_env({})
        assert settings.port == 10000
        assert settings.host == "0.0.0.0"
        assert settings.log_level == "INFO"
        assert settings.model_path.name == "final_fg_model.yaml"

    def test_overrides(self, tmp_path):
        """Test PORT, ORN_ARTIFACT_DIR and ORN_LOG_LEVEL"""
        settings = AppSettings.from_env({
            "PORT": "8501", "ORN_ARTIFACT_DIR": str(tmp_path), "ORN_LOG_LEVEL": "debug"
        })
        assert settings.port == 8501
        assert settings.host == "0.0.0.0"
        assert settings.artifact_dir == tmp_path
        assert settings.log_level == "DEBUG"
        assert settings.reference_path(ReferenceOption.POSITIVE) == tmp_path / "mean_cif_data_ORN_positive.csv"

    @pytest.mark.parametrize("port", ["eighty", "80.5", "", "0", "70000"])
    def test_invalid_port(self, port):
        """Test a PORT that is not a usable port number"""
        with pytest.raises(SettingsError, match="PORT"):
            AppSettings.from_env({"PORT": port})

    def test_invalid_log_level(self):
        """Test an unknown log level name"""
        with pytest.raises(SettingsError, match="ORN_LOG_LEVEL"):
            AppSettings.from_env({"ORN_LOG_LEVEL": "chatty"})

    def test_log_level_aliases(self):
        """Test standard level names in any case"""
        assert AppSettings.from_env({"ORN_LOG_LEVEL": "warning"}).log_level == "WARNING"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
