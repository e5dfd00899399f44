from typing import Any, Optional

from sqlmodel import Session

from binauthz_demo.core.config import Settings, settings as default_settings
from binauthz_demo.core.db import get_session
from binauthz_demo.daos.step_record_dao import StepRecordDao
from binauthz_demo.services.attestation_service import AttestationService
from binauthz_demo.services.command_service import CommandService
from binauthz_demo.services.config_service import ConfigService
from binauthz_demo.services.container_analysis_service import ContainerAnalysisService
from binauthz_demo.services.gcloud_service import GcloudService
from binauthz_demo.services.gpg_service import GpgService
from binauthz_demo.services.provisioner_service import ProvisionerService
from binauthz_demo.services.validator_service import ValidatorService


def initiate_services(
    settings: Optional[Settings] = None,
    command_service: Optional[CommandService] = None,
    session: Optional[Session] = None,
) -> dict[str, Any]:
    """Wire the remote-facing services.

    The step ledger is only opened here when ``session`` is given; otherwise
    it is left to ``initiate_ledger_services`` so commands that never record
    steps do not create the state database.
    """
    settings = settings or default_settings
    ioc: dict[str, Any] = {"Settings": settings}

    ioc["CommandService"] = command_service or CommandService()
    ioc["GcloudService"] = GcloudService(ioc["CommandService"], settings)
    ioc["GpgService"] = GpgService(ioc["CommandService"], settings)
    ioc["ConfigService"] = ConfigService(ioc["GcloudService"], settings)
    ioc["ContainerAnalysisService"] = ContainerAnalysisService(ioc["GcloudService"], settings)
    ioc["ProvisionerService"] = ProvisionerService(
        gcloud_service=ioc["GcloudService"],
        command_service=ioc["CommandService"],
        settings=settings,
    )
    ioc["ValidatorService"] = ValidatorService(
        gcloud_service=ioc["GcloudService"],
        container_analysis_service=ioc["ContainerAnalysisService"],
        settings=settings,
    )
    if session is not None:
        initiate_ledger_services(ioc, session)
    return ioc


def initiate_ledger_services(ioc: dict[str, Any], session: Optional[Session] = None) -> dict[str, Any]:
    if "StepRecordDao" in ioc:
        return ioc

    settings = ioc["Settings"]
    ioc["StepRecordDao"] = StepRecordDao(session or get_session(settings.STATE_DB_URI))
    ioc["AttestationService"] = AttestationService(
        gcloud_service=ioc["GcloudService"],
        gpg_service=ioc["GpgService"],
        container_analysis_service=ioc["ContainerAnalysisService"],
        step_record_dao=ioc["StepRecordDao"],
        settings=settings,
    )
    return ioc
