import pytest

from simfire.settings import (
    DEFAULT_MAX_TICKS,
    Settings,
    SettingsError,
    import_settings,
    load_settings,
    parse_ini_text,
)

VALID_INI = """
identifier = Shot_01

[gun]
x = 0
y = 0
z = 1.5
velocity = 50      ; m/s
cd = 0.47
mass = 0.1
size = 0.05

[target]
x = 100
y = 0
z = 0
size = 0.5

[environment]
g = 9.81
density = 1.225

[simulation]
dt = 0.01
generation = 30
maxgens = 20
threads = 4
seed = 42
maxticks = 1e6

[search]
finetune = 0.08
spawners = 3

[test]
doTestRun = yes
aimX = 100
aimZStart = 1
aimZEnd = 41
aimZSteps = 40
csvExportTemplate = out/{run}.csv
csvHitsOnly = false
"""


def test_valid_file_is_imported():
    settings, errors = import_settings(parse_ini_text(VALID_INI))

    assert errors == []
    assert settings.identifier == "Shot_01"
    assert settings.gun_z == 1.5
    assert settings.velocity == 50.0
    assert settings.tgt_x == 100.0
    assert settings.runs_in_generation == 30
    assert settings.max_generations == 20
    assert settings.thread_count == 4
    assert settings.rng_seed == 42
    assert settings.max_ticks == 1_000_000
    assert settings.fine_tune_coef == 0.08
    assert settings.spawner_count == 3
    assert settings.do_test_run is True
    assert settings.aim_z_steps == 40
    assert settings.csv_export_template == "out/{run}.csv"
    assert settings.csv_hits_only is False


def test_defaults_for_optional_values():
    text = VALID_INI.split("[simulation]")[0]
    settings, errors = import_settings(parse_ini_text(text))

    assert errors == []
    assert settings.dt == 0.01
    assert settings.max_ticks == DEFAULT_MAX_TICKS
    assert settings.rng_seed is None
    assert settings.thread_count >= 1
    assert not settings.do_test_run


def test_missing_identifier_is_reported():
    text = VALID_INI.replace("identifier = Shot_01", "")
    _, errors = import_settings(parse_ini_text(text))
    assert "Identifier value not found" in errors


def test_all_problems_are_collected():
    text = (VALID_INI
            .replace("velocity = 50      ; m/s", "velocity = -3")
            .replace("mass = 0.1", "mass = heavy")
            .replace("identifier = Shot_01", "identifier = bad name!"))
    _, errors = import_settings(parse_ini_text(text))

    assert "Velocity must be positive" in errors
    assert "Invalid value for [gun] mass: 'heavy'" in errors
    assert "Identifier contains unsupported characters" in errors


def test_missing_physical_values():
    _, errors = import_settings(parse_ini_text("identifier = Empty\n"))
    assert "Velocity must be positive" in errors
    assert "Target radius must be positive" in errors


def test_load_settings_from_file(tmp_path):
    path = tmp_path / "shot.ini"
    path.write_text(VALID_INI, encoding="utf-8")

    settings, errors = load_settings(str(path))
    assert errors == []
    assert settings.identifier == "Shot_01"


def test_load_settings_missing_file(tmp_path):
    path = tmp_path / "nope.ini"
    _, errors = load_settings(str(path))
    assert errors == [f"Setup file '{path}' does not exist."]


def test_geometry_properties():
    settings = Settings(gun_x=1.0, gun_z=2.0, tgt_x=11.0, tgt_z=2.0, density=0.0)
    assert list(settings.line_of_sight) == [10.0, 0.0, 0.0]
    assert settings.is_vacuum


def test_settings_are_read_only():
    settings = Settings()
    with pytest.raises(AttributeError):
        settings.velocity = 10.0


def test_settings_error_carries_messages():
    err = SettingsError(["one", "two"])
    assert err.errors == ["one", "two"]
    assert str(err) == "one; two"
    assert isinstance(err, ValueError)


def test_preprint_lists_every_value():
    text = Settings(identifier="Shot", velocity=50.0).preprint()
    assert "identifier          Shot" in text
    assert "velocity            50.0 m/s" in text


def test_require_valid_raises_with_every_message():
    with pytest.raises(SettingsError) as excinfo:
        Settings(identifier="Shot", velocity=-1.0).require_valid()
    assert "Velocity must be positive" in excinfo.value.errors
    assert "Target radius must be positive" in excinfo.value.errors


@pytest.mark.parametrize("template", ["out/{id}.csv", "out/{run}_{0}.csv", "out/{run.csv", "out/{run!z}.csv"])
def test_csv_template_with_unknown_fields_is_rejected(template):
    text = VALID_INI.replace("csvExportTemplate = out/{run}.csv", f"csvExportTemplate = {template}")
    _, errors = import_settings(parse_ini_text(text))
    assert errors == ["CSV export template must only use the {run} placeholder"]


def test_gun_at_target_is_rejected():
    text = VALID_INI.replace("z = 1.5", "z = 0").replace("x = 100", "x = 0")
    _, errors = import_settings(parse_ini_text(text))
    assert errors == ["Gun and target positions must differ"]


def test_negative_search_coefficients_are_rejected():
    settings = Settings(identifier="Shot", velocity=50.0, cd=0.47, mass=0.1, bullet_size=0.05,
                        tgt_x=100.0, tgt_size=0.5, aim_jitter=-0.1, cutoff_coef=-1.0,
                        mutate_coef=-0.2, hallucinate_coef=-1.0)
    assert settings.validate() == [
        "Initial aim jitter must not be negative",
        "Classification cutoff must not be negative",
        "Mutation coefficient must not be negative",
        "Hallucination coefficient must not be negative",
    ]
