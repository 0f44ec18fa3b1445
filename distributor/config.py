from distributor.models import Config, DistributionInput


def load_conf(path: str) -> Config:
    """Loads the deployment config from a json file"""
    with open(path) as f:
        return Config.model_validate_json(f.read())


def load_input(path: str) -> DistributionInput:
    """Loads the parameters of one distribution run from a json file"""
    with open(path) as f:
        return DistributionInput.model_validate_json(f.read())
